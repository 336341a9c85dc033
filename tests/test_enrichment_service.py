import asyncio

from conftest import FakeFetcher, make_png

from clipterminal.errors import FetchTimeoutError
from clipterminal.models import ClipboardItem, ItemKind
from clipterminal.services import EnrichmentService, HistoryStore

PAGE_URL = "https://example.com/page"
IMAGE_URL = "https://example.com/card.png"
PAGE = (
    b'<html><head><meta property="og:title" content="Example &amp; Co">'
    b'<meta content="An example" name="og:description">'
    b'<meta property="og:image" content="/card.png"></head></html>'
)


def link_item(url=PAGE_URL):
    return ClipboardItem.create(ItemKind.TEXT, url, is_link=True, enrichment_pending=True)


def run(service, item):
    return asyncio.run(service.enrich(item.id, item.content))


def test_successful_enrichment_sets_fields_and_preview(store):
    fetcher = FakeFetcher({PAGE_URL: PAGE, IMAGE_URL: make_png(8, 6)})
    service = EnrichmentService(store, fetcher=fetcher)
    item = store.insert(link_item())

    updated = run(service, item)

    assert updated.title == "Example & Co"
    assert updated.description == "An example"
    assert updated.preview_asset_ref == f"{item.id}-preview.png"
    assert updated.enrichment_pending is False
    assert store.find(item.id) == updated
    assert store.assets.exists(updated.preview_asset_ref)


def test_requests_use_timeouts_and_user_agent(store):
    fetcher = FakeFetcher({PAGE_URL: PAGE, IMAGE_URL: make_png()})
    service = EnrichmentService(store, fetcher=fetcher, page_timeout=8.0, image_timeout=5.0, user_agent="Tester/1.0")
    item = store.insert(link_item())

    run(service, item)

    assert [(url, timeout) for url, timeout, _ in fetcher.calls] == [(PAGE_URL, 8.0), (IMAGE_URL, 5.0)]
    assert all(headers["User-Agent"] == "Tester/1.0" for _, _, headers in fetcher.calls)


def test_page_failure_is_terminal_and_clears_pending(store):
    fetcher = FakeFetcher({PAGE_URL: FetchTimeoutError("slow")})
    service = EnrichmentService(store, fetcher=fetcher)
    item = store.insert(link_item())

    updated = run(service, item)

    assert updated.enrichment_pending is False
    assert (updated.title, updated.description, updated.preview_asset_ref) == (None, None, None)
    assert len(fetcher.calls) == 1


def test_page_without_tags_clears_pending(store):
    fetcher = FakeFetcher({PAGE_URL: b"<html><title>Plain</title></html>"})
    service = EnrichmentService(store, fetcher=fetcher)
    item = store.insert(link_item())

    updated = run(service, item)

    assert updated.enrichment_pending is False
    assert updated.title is None


def test_undecodable_preview_image_is_not_stored(store):
    fetcher = FakeFetcher({PAGE_URL: PAGE, IMAGE_URL: b"<html>404</html>"})
    service = EnrichmentService(store, fetcher=fetcher)
    item = store.insert(link_item())

    updated = run(service, item)

    assert updated.title == "Example & Co"
    assert updated.preview_asset_ref is None
    assert store.assets.refs() == []


def test_item_removed_before_start_is_not_fetched(store):
    fetcher = FakeFetcher({PAGE_URL: PAGE})
    service = EnrichmentService(store, fetcher=fetcher)
    item = store.insert(link_item())
    store.remove(item.id)

    assert run(service, item) is None
    assert fetcher.calls == []


def test_eviction_during_fetch_drops_result(history_file, assets):
    store = HistoryStore(history_file, assets, max_items=1)
    a = store.insert(link_item())
    b = ClipboardItem.create(ItemKind.TEXT, "B")

    def evict_a(url):
        if url == PAGE_URL:
            store.insert(b)

    fetcher = FakeFetcher({PAGE_URL: PAGE, IMAGE_URL: make_png()}, before_return=evict_a)
    service = EnrichmentService(store, fetcher=fetcher)

    assert run(service, a) is None

    assert [item.id for item in store.list()] == [b.id]
    assert [item.id for item in history_file.load()] == [b.id]
    assert assets.refs() == []


def test_preview_written_for_evicted_item_is_deleted(history_file, assets):
    store = HistoryStore(history_file, assets, max_items=1)
    a = store.insert(link_item())
    b = ClipboardItem.create(ItemKind.TEXT, "B")
    original_store = assets.store

    def store_then_evict(*args, **kwargs):
        ref = original_store(*args, **kwargs)
        store.insert(b)
        return ref

    assets.store = store_then_evict
    fetcher = FakeFetcher({PAGE_URL: PAGE, IMAGE_URL: make_png()})
    service = EnrichmentService(store, fetcher=fetcher)

    assert run(service, a) is None

    assert store.find(a.id) is None
    assert [item.id for item in store.list()] == [b.id]
    assert assets.refs() == []


def test_schedule_runs_on_background_loop(store):
    fetcher = FakeFetcher({PAGE_URL: PAGE, IMAGE_URL: make_png()})
    item = store.insert(link_item())

    with EnrichmentService(store, fetcher=fetcher, auto_start=True) as service:
        assert service.running
        result = service.schedule(item).result(timeout=5.0)

    assert result.title == "Example & Co"
    assert not service.running
    assert fetcher.closed


def test_schedule_ignores_plain_text_and_stopped_service(store):
    service = EnrichmentService(store, fetcher=FakeFetcher())
    plain = store.insert(ClipboardItem.create(ItemKind.TEXT, "plain"))
    link = store.insert(link_item())

    assert service.schedule(plain) is None
    assert service.schedule(link) is None
    assert store.find(link.id).enrichment_pending is True


def test_malformed_image_url_still_clears_pending(store):
    page = b'<meta property="og:title" content="T"><meta property="og:image" content="http://[bad">'
    fetcher = FakeFetcher({PAGE_URL: page})
    service = EnrichmentService(store, fetcher=fetcher)
    item = store.insert(link_item())

    updated = run(service, item)

    assert updated.title == "T"
    assert updated.enrichment_pending is False
    assert len(fetcher.calls) == 1


def test_unexpected_fetch_error_still_clears_pending(store):
    fetcher = FakeFetcher({PAGE_URL: RuntimeError("decoder exploded")})
    service = EnrichmentService(store, fetcher=fetcher)
    item = store.insert(link_item())

    updated = run(service, item)

    assert updated.enrichment_pending is False
    assert store.find(item.id).title is None
