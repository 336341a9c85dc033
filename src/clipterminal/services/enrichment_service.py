import asyncio
import concurrent.futures
import logging
import threading
from typing import Optional, Set

from clipterminal.config import DEFAULT_USER_AGENT
from clipterminal.errors import AssetWriteError, NetworkFetchError
from clipterminal.models import ClipboardItem
from clipterminal.network import AiohttpFetcher, Fetcher
from clipterminal.services.history_store import HistoryStore
from clipterminal.storage import PREVIEW_SUFFIX
from clipterminal.utils.images import image_extension, probe_image
from clipterminal.utils.link_preview import LinkPreview, extract_preview

logger = logging.getLogger(__name__)


class EnrichmentService:
    """Fetches link previews on a private asyncio loop and writes them back by id.

    A task only remembers the item id. If the item is evicted while the
    fetch is in flight, ``HistoryStore.update`` drops the result and any
    preview image stored for it is deleted again.
    """

    def __init__(
        self,
        store: HistoryStore,
        fetcher: Optional[Fetcher] = None,
        page_timeout: float = 8.0,
        image_timeout: float = 5.0,
        user_agent: str = DEFAULT_USER_AGENT,
        auto_start: bool = False,
    ):
        self.store = store
        self.fetcher = fetcher or AiohttpFetcher()
        self.page_timeout = page_timeout
        self.image_timeout = image_timeout
        self.headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._lock = threading.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._running = False

        if auto_start:
            self.start()

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._ready.clear()
            self._thread = threading.Thread(
                target=self._run_loop, name="clipterminal-enrichment", daemon=True)
            self._thread.start()
        self._ready.wait(timeout=5.0)

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
            loop = self._loop

        if loop is not None:
            future = asyncio.run_coroutine_threadsafe(self._shutdown(), loop)
            try:
                future.result(timeout=timeout)
            except Exception as e:
                logger.warning(f"Enrichment shutdown did not finish cleanly: {e}")
            loop.call_soon_threadsafe(loop.stop)

        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        except Exception as e:
            logger.error(f"Enrichment loop error: {e}")
        finally:
            loop.close()
            self._loop = None

    async def _shutdown(self) -> None:
        tasks = [task for task in self._tasks if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.fetcher.close()

    def __enter__(self) -> "EnrichmentService":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def schedule(self, item: ClipboardItem) -> Optional[concurrent.futures.Future]:
        """Queue enrichment for a link item; safe to call from any thread."""
        if not item.is_link:
            return None
        loop = self._loop
        if not self._running or loop is None:
            logger.warning(f"Enrichment not running, item {item.id} stays pending")
            return None
        return asyncio.run_coroutine_threadsafe(self._track(item.id, item.content.strip()), loop)

    async def _track(self, item_id: str, url: str) -> Optional[ClipboardItem]:
        task = asyncio.current_task()
        self._tasks.add(task)
        try:
            return await self.enrich(item_id, url)
        finally:
            self._tasks.discard(task)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------
    async def enrich(self, item_id: str, url: str) -> Optional[ClipboardItem]:
        if self.store.find(item_id) is None:
            logger.debug(f"Item {item_id} gone before enrichment started")
            return None

        preview = LinkPreview()
        image_data = None
        try:
            preview = await self._fetch_preview(url)
            if preview.image_url:
                image_data = await self._fetch_image(preview.image_url)
        except Exception as e:
            # still clear the pending flag below
            logger.warning(f"Enrichment failed for {url}: {e}")

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._apply, item_id, preview, image_data)

    async def _fetch_preview(self, url: str) -> LinkPreview:
        try:
            markup = await self.fetcher.fetch(url, self.page_timeout, self.headers)
        except NetworkFetchError as e:
            logger.info(f"Link preview failed for {url}: {e}")
            return LinkPreview()
        return extract_preview(markup.decode("utf-8", errors="replace"), page_url=url)

    async def _fetch_image(self, image_url: str) -> Optional[bytes]:
        try:
            data = await self.fetcher.fetch(image_url, self.image_timeout, self.headers)
        except NetworkFetchError as e:
            logger.info(f"Preview image failed for {image_url}: {e}")
            return None
        if probe_image(data) is None:
            logger.info(f"Preview image at {image_url} is not a decodable image")
            return None
        return data

    def _apply(self, item_id: str, preview: LinkPreview, image_data: Optional[bytes]) -> Optional[ClipboardItem]:
        preview_ref = None
        if image_data is not None and self.store.find(item_id) is not None:
            try:
                preview_ref = self.store.assets.store(
                    image_data, image_extension(image_data), item_id=item_id, suffix=PREVIEW_SUFFIX)
            except AssetWriteError as e:
                logger.warning(f"Preview image not cached for {item_id}: {e}")

        changes = {"enrichment_pending": False}
        if preview.title:
            changes["title"] = preview.title
        if preview.description:
            changes["description"] = preview.description
        if preview_ref:
            changes["preview_asset_ref"] = preview_ref

        updated = self.store.update(item_id, **changes)
        if updated is None:
            logger.debug(f"Item {item_id} evicted during enrichment, result dropped")
            if preview_ref:
                self.store.assets.delete(preview_ref)
        return updated
