"""Bounded, deduplicated, most-recent-first clipboard history.

``HistoryStore`` is the only writer of the item collection and of the
history file. Every mutation runs under one re-entrant lock and rewrites
the file before the lock is released; readers get tuple snapshots.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from clipterminal.errors import PersistenceError
from clipterminal.models import ClipboardItem
from clipterminal.storage import AssetCache, HistoryFile

logger = logging.getLogger(__name__)

Snapshot = Tuple[ClipboardItem, ...]
ChangeCallback = Callable[[Snapshot], None]


class HistoryStore:

    def __init__(
        self,
        history_file: HistoryFile,
        assets: AssetCache,
        max_items: int = 100,
        auto_load: bool = True,
    ) -> None:
        if max_items <= 0:
            raise ValueError("max_items must be > 0")
        self._file = history_file
        self._assets = assets
        self._max_items = max_items
        self._items: List[ClipboardItem] = []
        self._lock = threading.RLock()
        self._callbacks: List[ChangeCallback] = []

        if auto_load:
            self.load()

    @property
    def max_items(self) -> int:
        return self._max_items

    @property
    def assets(self) -> AssetCache:
        return self._assets

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def load(self) -> Snapshot:
        try:
            loaded = self._file.load()
        except PersistenceError as e:
            logger.error(f"Starting with empty history: {e}")
            loaded = []

        seen = set()
        unique: List[ClipboardItem] = []
        for item in loaded:
            if item.id in seen:
                logger.warning(f"Dropping duplicate id {item.id} from history file")
                continue
            seen.add(item.id)
            unique.append(item)

        with self._lock:
            self._items = unique
            overflow = self._trim()
            if overflow:
                self._persist()
                self._release(overflow)
            snapshot = tuple(self._items)

        logger.info(f"Loaded {len(snapshot)} history item(s) from {self._file.path}")
        return snapshot

    def pending_enrichment(self) -> Snapshot:
        """Link items whose enrichment never finished (e.g. the process exited mid-fetch)."""
        with self._lock:
            return tuple(item for item in self._items if item.is_link and item.enrichment_pending)

    def prune_orphaned_assets(self) -> int:
        with self._lock:
            owned = [ref for item in self._items for ref in item.asset_refs()]
            return self._assets.prune(owned)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list(self) -> Snapshot:
        with self._lock:
            return tuple(self._items)

    def search(self, query: str) -> Snapshot:
        """Items whose content contains ``query``, ignoring case; all items for a blank query."""
        needle = query.strip().casefold()
        with self._lock:
            if not needle:
                return tuple(self._items)
            return tuple(item for item in self._items if needle in item.content.casefold())

    def find(self, item_id: str) -> Optional[ClipboardItem]:
        with self._lock:
            index = self._index_of(item_id)
            return self._items[index] if index is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def insert(self, item: ClipboardItem) -> ClipboardItem:
        released: List[ClipboardItem] = []
        with self._lock:
            if self._index_of(item.id) is not None:
                raise ValueError(f"Item id already present: {item.id}")

            key = item.dedupe_key()
            if key is not None:
                for index, existing in enumerate(self._items):
                    if existing.dedupe_key() == key:
                        released.append(self._items.pop(index))
                        break

            self._items.insert(0, item)
            released.extend(self._trim())
            self._persist()
            self._release(released)
            snapshot = tuple(self._items)

        logger.debug(f"Inserted {item.kind.value} item {item.id} ({len(released)} removed)")
        self._notify(snapshot)
        return item

    def update(self, item_id: str, **changes) -> Optional[ClipboardItem]:
        """Apply field changes to ``item_id``; a no-op returning ``None`` if it is gone."""
        with self._lock:
            index = self._index_of(item_id)
            if index is None:
                logger.debug(f"Dropping update for missing item {item_id}")
                return None
            updated = self._items[index].evolve(**changes)
            self._items[index] = updated
            self._persist()
            snapshot = tuple(self._items)

        self._notify(snapshot)
        return updated

    def promote(self, item_id: str) -> Optional[ClipboardItem]:
        with self._lock:
            index = self._index_of(item_id)
            if index is None:
                return None
            item = self._items.pop(index).evolve(timestamp=datetime.now())
            self._items.insert(0, item)
            self._persist()
            snapshot = tuple(self._items)

        self._notify(snapshot)
        return item

    def remove(self, item_id: str) -> bool:
        with self._lock:
            index = self._index_of(item_id)
            if index is None:
                return False
            removed = self._items.pop(index)
            self._persist()
            self._release([removed])
            snapshot = tuple(self._items)

        self._notify(snapshot)
        return True

    def clear(self) -> None:
        with self._lock:
            removed = self._items
            self._items = []
            self._persist()
            self._release(removed)
            snapshot = tuple(self._items)

        logger.info(f"Cleared {len(removed)} history item(s)")
        self._notify(snapshot)

    def flush(self) -> bool:
        with self._lock:
            return self._persist()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------
    def subscribe(self, callback: ChangeCallback) -> None:
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unsubscribe(self, callback: ChangeCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _index_of(self, item_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        return None

    def _trim(self) -> List[ClipboardItem]:
        evicted: List[ClipboardItem] = []
        while len(self._items) > self._max_items:
            evicted.append(self._items.pop())
        return evicted

    def _persist(self) -> bool:
        try:
            self._file.save(self._items)
            return True
        except PersistenceError as e:
            logger.error(f"History not saved, keeping in-memory state: {e}")
            return False

    def _release(self, items: Iterable[ClipboardItem]) -> None:
        # Items must already be out of the collection; each ref is deleted once.
        for item in items:
            for ref in item.asset_refs():
                self._assets.delete(ref)

    def _notify(self, snapshot: Snapshot) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Error in history change callback")
