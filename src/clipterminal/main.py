#!/usr/bin/env python3

import argparse
import logging
import signal
import sys
import time
from contextlib import nullcontext
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, Sequence

from clipterminal.clipboard import ClipboardBackend, get_clipboard_backend
from clipterminal.config import Settings
from clipterminal.errors import AssetNotFoundError
from clipterminal.models import ClipboardItem, ItemKind
from clipterminal.network import Fetcher
from clipterminal.services import ClipboardWatcher, EnrichmentService, HistoryStore
from clipterminal.services.history_store import Snapshot
from clipterminal.storage import AssetCache, HistoryFile
from clipterminal.utils.images import as_png

logger = logging.getLogger(__name__)


class ClipTerminalApp:
    """Owns the store, the watcher and the enrichment service.

    Construction loads the history from disk; ``stop`` stops polling, stops
    enrichment and flushes the history file.
    """

    def __init__(
        self,
        settings: Settings,
        backend: Optional[ClipboardBackend] = None,
        fetcher: Optional[Fetcher] = None,
    ):
        self.settings = settings
        self.assets = AssetCache(settings.images_dir)
        self.store = HistoryStore(
            HistoryFile(settings.history_file),
            self.assets,
            max_items=settings.max_history,
        )
        self._backend = backend
        self.enrichment: Optional[EnrichmentService] = None
        if settings.enrich_links:
            self.enrichment = EnrichmentService(
                self.store,
                fetcher=fetcher,
                page_timeout=settings.page_timeout,
                image_timeout=settings.image_timeout,
                user_agent=settings.user_agent,
            )
        self.watcher: Optional[ClipboardWatcher] = None
        self.running = False

    @property
    def backend(self) -> ClipboardBackend:
        if self._backend is None:
            self._backend = get_clipboard_backend()
        return self._backend

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self.running:
            return
        self.running = True

        self.store.prune_orphaned_assets()

        if self.enrichment is not None:
            self.enrichment.start()
        for item in self.store.pending_enrichment():
            self._on_link(item)

        self.watcher = ClipboardWatcher(
            self.backend,
            self.store,
            on_link=self._on_link,
            poll_interval=self.settings.poll_interval,
            auto_start=True,
        )
        logger.info(f"ClipTerminal running with {len(self.store)} item(s) in history")

    def stop(self) -> None:
        if not self.running:
            return
        self.running = False

        if self.watcher is not None:
            self.watcher.stop()
        if self.enrichment is not None:
            self.enrichment.stop()
        self.store.flush()
        logger.info("ClipTerminal stopped")

    def run_forever(self) -> None:
        self.start()
        try:
            while self.running:
                time.sleep(1.0)
        except KeyboardInterrupt:
            print("\nStopping...")
        finally:
            self.stop()

    def __enter__(self) -> "ClipTerminalApp":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _on_link(self, item: ClipboardItem) -> None:
        if self.enrichment is not None and self.enrichment.running:
            self.enrichment.schedule(item)
        elif not self.settings.enrich_links:
            self.store.update(item.id, enrichment_pending=False)

    # ------------------------------------------------------------------
    # Front-end operations
    # ------------------------------------------------------------------
    def history(self) -> Snapshot:
        return self.store.list()

    def search(self, query: str) -> Snapshot:
        return self.store.search(query)

    def insert(self, item: ClipboardItem) -> ClipboardItem:
        inserted = self.store.insert(item)
        if inserted.is_link:
            self._on_link(inserted)
        return inserted

    def copy(self, item_id: str) -> bool:
        """Put a history item back on the clipboard and move it to the top."""
        item = self.store.find(item_id)
        if item is None:
            return False

        if item.kind is ItemKind.IMAGE and not item.asset_ref:
            logger.warning(f"Image item {item_id} has no cached data to copy")
            return False

        image_data = None
        if item.kind is ItemKind.IMAGE:
            try:
                image_data = self.assets.load(item.asset_ref)
            except AssetNotFoundError as e:
                logger.warning(f"Image item {item_id} cannot be copied: {e}")
                return False

        guard = self.watcher.suppressed() if self.watcher is not None else nullcontext()
        with guard:
            if item.kind is ItemKind.TEXT:
                self.backend.write_text(item.content)
            elif item.kind is ItemKind.FILE:
                self.backend.write_file(item.content)
            else:
                self.backend.write_image(as_png(image_data))
        self.store.promote(item_id)
        return True

    def remove(self, item_id: str) -> bool:
        return self.store.remove(item_id)

    def clear(self) -> None:
        self.store.clear()

    def lookup_asset(self, ref: str) -> bytes:
        return self.assets.load(ref)

    def subscribe(self, callback: Callable[[Snapshot], None]) -> None:
        self.store.subscribe(callback)


def describe(item: ClipboardItem, width: int = 70) -> str:
    if item.kind is ItemKind.IMAGE:
        summary = f"Image {int(item.width or 0)}x{int(item.height or 0)}"
    elif item.kind is ItemKind.FILE:
        summary = item.content
    else:
        summary = " ".join(item.content.split())
        if item.title:
            summary = f"{item.title} <{summary}>"
        elif item.enrichment_pending:
            summary = f"{summary} (fetching preview)"
    if len(summary) > width:
        summary = summary[: width - 3] + "..."
    return f"{item.timestamp:%Y-%m-%d %H:%M:%S}  {item.kind.value:<5}  {summary}"


def parse_args(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(
        description="ClipTerminal - clipboard history with link previews"
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=("run", "list", "clear"),
        default="run",
        help="run the watcher (default), print the history, or clear it"
    )

    parser.add_argument(
        "-i", "--poll-interval",
        type=float,
        default=None,
        help="Clipboard polling interval in seconds (default: 0.5)"
    )

    parser.add_argument(
        "-n", "--max-history",
        type=int,
        default=None,
        help="Maximum number of history items (default: 100)"
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding history.json and cached images (default: ~/.clipterminal)"
    )

    parser.add_argument(
        "--no-enrich",
        action="store_true",
        help="Do not fetch previews for copied links"
    )

    parser.add_argument(
        "-s", "--search",
        default=None,
        help="With list: only show items whose content contains TEXT (case-insensitive)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose debug logging"
    )

    return parser.parse_args(argv)


def build_settings(args) -> Settings:
    settings = Settings.from_env()
    overrides = {}
    if args.poll_interval is not None:
        overrides["poll_interval"] = args.poll_interval
    if args.max_history is not None:
        if args.max_history <= 0:
            raise ValueError("--max-history must be > 0")
        overrides["max_history"] = args.max_history
    if args.data_dir is not None:
        overrides["data_dir"] = args.data_dir.expanduser()
    if args.no_enrich:
        overrides["enrich_links"] = False
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return replace(settings, **overrides)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = build_settings(args)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    level = getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(level=level, format='%(levelname)s: %(message)s')

    app = ClipTerminalApp(settings)

    if args.command == "list":
        items = app.search(args.search) if args.search else app.history()
        for index, item in enumerate(items, start=1):
            print(f"{index:>3}  {describe(item)}")
        return 0

    if args.command == "clear":
        app.clear()
        print("History cleared")
        return 0

    def signal_handler(signum, frame):
        app.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        app.run_forever()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
