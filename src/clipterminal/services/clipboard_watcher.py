import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Hashable, Optional

from clipterminal.clipboard import ClipboardBackend
from clipterminal.errors import AssetWriteError, ClipboardReadError
from clipterminal.models import IMAGE_PLACEHOLDER, ClipboardItem, ClipboardSnapshot, ItemKind, new_item_id
from clipterminal.services.history_store import HistoryStore
from clipterminal.utils.images import image_extension, probe_image
from clipterminal.utils.link_preview import is_link

logger = logging.getLogger(__name__)

_UNSET = object()


class ClipboardWatcher:
    """Polls a clipboard backend and records each change in the history.

    Only the content present at a tick is seen; several copies within one
    interval collapse into the last one.
    """

    def __init__(
        self,
        backend: ClipboardBackend,
        store: HistoryStore,
        on_link: Optional[Callable[[ClipboardItem], None]] = None,
        poll_interval: float = 0.5,
        capture_initial: bool = True,
        auto_start: bool = False,
    ) -> None:
        self.backend = backend
        self.store = store
        self.poll_interval = poll_interval
        self.capture_initial = capture_initial
        self._on_link = on_link
        self._last_token = _UNSET
        self._token_lock = threading.RLock()
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self._is_running = False

        if auto_start:
            self.start()

    # ---------------------------------------------------------------------
    # Lifecycle management
    # ---------------------------------------------------------------------
    def start(self) -> None:
        with self._lock:
            if self._is_running:
                logger.debug("ClipboardWatcher already running")
                return

            logger.info(f"Starting clipboard polling (interval={self.poll_interval}s)")
            self._stop_event.clear()
            self._is_running = True
            self._poll_thread = threading.Thread(
                target=self._poll_loop, name="clipterminal-watcher", daemon=True)
            self._poll_thread.start()

    def stop(self) -> None:
        with self._lock:
            if not self._is_running:
                return

            logger.info("Stopping clipboard polling")
            self._is_running = False
            self._stop_event.set()

        # join thread outside the lock
        if self._poll_thread is not None:
            self._poll_thread.join(timeout=max(1.0, self.poll_interval * 2))
            self._poll_thread = None

    @property
    def running(self) -> bool:
        return self._is_running

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Unexpected error while polling the clipboard")
            self._stop_event.wait(self.poll_interval)

    def __enter__(self) -> "ClipboardWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ---------------------------------------------------------------------
    # Polling
    # ---------------------------------------------------------------------
    def acknowledge(self) -> None:
        """Treat the clipboard's current contents as already seen."""
        with self._token_lock:
            try:
                self._last_token = self.backend.current_change_token()
            except ClipboardReadError as e:
                logger.debug(f"Could not acknowledge clipboard token: {e}")

    @contextmanager
    def suppressed(self):
        """Hold off polling while the app writes; the result counts as seen."""
        with self._token_lock:
            yield
            self.acknowledge()

    def poll_once(self) -> Optional[ClipboardItem]:
        """Run one tick; returns the recorded item, if any."""
        with self._token_lock:
            try:
                token: Hashable = self.backend.current_change_token()
            except ClipboardReadError as e:
                logger.debug(f"Skipping tick, clipboard unreadable: {e}")
                return None

            if token == self._last_token:
                return None

            if self._last_token is _UNSET and not self.capture_initial:
                self._last_token = token
                return None

            try:
                snapshot = self.backend.read_snapshot()
            except ClipboardReadError as e:
                logger.warning(f"Clipboard changed but could not be read, retrying: {e}")
                return None
            self._last_token = token

        candidate = self.build_item(snapshot)
        if candidate is None:
            return None

        item = self.store.insert(candidate)
        logger.info(f"Clipboard copied: {item.kind.value}")
        if item.is_link and self._on_link is not None:
            self._on_link(item)
        return item

    # ---------------------------------------------------------------------
    # Classification
    # ---------------------------------------------------------------------
    def build_item(self, snapshot: ClipboardSnapshot) -> Optional[ClipboardItem]:
        """First match wins: file reference, then image, then text."""
        if snapshot.file_path:
            return self._build_file_item(snapshot.file_path)

        if snapshot.image_bytes:
            item = self._build_image_item(snapshot.image_bytes)
            if item is not None:
                return item

        if snapshot.text is not None:
            return self._build_text_item(snapshot.text)

        return None

    def _build_file_item(self, path: str) -> ClipboardItem:
        file_size = None
        try:
            candidate = Path(path)
            if candidate.is_file():
                file_size = candidate.stat().st_size
        except OSError as e:
            logger.debug(f"Could not stat {path}: {e}")
        return ClipboardItem.create(ItemKind.FILE, path, file_size=file_size)

    def _build_image_item(self, data: bytes) -> Optional[ClipboardItem]:
        size = probe_image(data)
        if size is None:
            logger.debug("Clipboard image data did not decode, ignoring it")
            return None

        item_id = new_item_id()
        asset_ref = None
        try:
            asset_ref = self.store.assets.store(data, image_extension(data), item_id=item_id)
        except AssetWriteError as e:
            logger.error(f"Image recorded without cached copy: {e}")

        width, height = size
        return ClipboardItem.create(
            ItemKind.IMAGE,
            IMAGE_PLACEHOLDER,
            id=item_id,
            asset_ref=asset_ref,
            file_size=len(data),
            width=width,
            height=height,
        )

    def _build_text_item(self, text: str) -> Optional[ClipboardItem]:
        if not text.strip():
            return None
        link = is_link(text)
        return ClipboardItem.create(ItemKind.TEXT, text, is_link=link, enrichment_pending=link)
