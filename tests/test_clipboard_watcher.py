import logging
import time

from clipterminal.models import ItemKind
from clipterminal.services import ClipboardWatcher


def make_watcher(clipboard, store, **kwargs):
    return ClipboardWatcher(clipboard, store, **kwargs)


def test_unchanged_token_does_nothing(clipboard, store):
    clipboard.set(text="hello")
    watcher = make_watcher(clipboard, store)

    assert watcher.poll_once().content == "hello"
    assert watcher.poll_once() is None
    assert len(store) == 1


def test_initial_content_can_be_skipped(clipboard, store):
    clipboard.set(text="already there")
    watcher = make_watcher(clipboard, store, capture_initial=False)

    assert watcher.poll_once() is None
    clipboard.set(text="new")
    assert watcher.poll_once().content == "new"


def test_file_wins_over_image_and_text(clipboard, store, tmp_path, png_bytes):
    target = tmp_path / "report.txt"
    target.write_text("12345")
    clipboard.set(file_path=str(target), image_bytes=png_bytes, text="report.txt")

    item = make_watcher(clipboard, store).poll_once()

    assert item.kind is ItemKind.FILE
    assert item.content == str(target)
    assert item.file_size == 5
    assert store.assets.refs() == []


def test_missing_file_recorded_without_size(clipboard, store, tmp_path):
    clipboard.set(file_path=str(tmp_path / "gone.txt"))

    item = make_watcher(clipboard, store).poll_once()

    assert item.kind is ItemKind.FILE
    assert item.file_size is None


def test_image_is_cached_before_insert(clipboard, store, png_bytes):
    clipboard.set(image_bytes=png_bytes, text="ignored")

    item = make_watcher(clipboard, store).poll_once()

    assert item.kind is ItemKind.IMAGE
    assert item.content == "Image"
    assert (item.width, item.height) == (4, 3)
    assert item.file_size == len(png_bytes)
    assert item.asset_ref == f"{item.id}.png"
    assert store.assets.load(item.asset_ref) == png_bytes


def test_undecodable_image_falls_back_to_text(clipboard, store):
    clipboard.set(image_bytes=b"not an image", text="caption")

    item = make_watcher(clipboard, store).poll_once()

    assert item.kind is ItemKind.TEXT
    assert item.content == "caption"
    assert store.assets.refs() == []


def test_image_recorded_without_asset_when_write_fails(clipboard, store, png_bytes, tmp_path):
    store.assets.base_dir.parent.mkdir(parents=True, exist_ok=True)
    store.assets.base_dir.write_text("blocks the directory")
    clipboard.set(image_bytes=png_bytes)

    item = make_watcher(clipboard, store).poll_once()

    assert item.kind is ItemKind.IMAGE
    assert item.asset_ref is None
    assert store.find(item.id) is not None


def test_whitespace_text_is_ignored(clipboard, store):
    clipboard.set(text="   \n\t")

    assert make_watcher(clipboard, store).poll_once() is None
    assert len(store) == 0


def test_links_are_flagged_and_handed_off(clipboard, store):
    scheduled = []
    watcher = make_watcher(clipboard, store, on_link=scheduled.append)

    clipboard.set(text="  https://example.com/page ")
    link = watcher.poll_once()
    clipboard.set(text="ftp://host/x")
    plain = watcher.poll_once()

    assert link.is_link and link.enrichment_pending
    assert link.content == "  https://example.com/page "
    assert not plain.is_link and not plain.enrichment_pending
    assert scheduled == [link]


def test_read_error_skips_tick_and_retries(clipboard, store):
    watcher = make_watcher(clipboard, store)
    clipboard.set(text="first")
    clipboard.fail_reads = True

    assert watcher.poll_once() is None

    clipboard.fail_reads = False
    assert watcher.poll_once().content == "first"


def test_acknowledge_ignores_own_writes(clipboard, store):
    watcher = make_watcher(clipboard, store)
    clipboard.write_text("from the app")
    watcher.acknowledge()

    assert watcher.poll_once() is None


def test_copying_same_text_again_moves_it_to_head(clipboard, store):
    watcher = make_watcher(clipboard, store)
    for value in ("a", "b", "a"):
        clipboard.set(text=value)
        watcher.poll_once()

    assert [item.content for item in store.list()] == ["a", "b"]


def test_background_polling_records_changes(clipboard, store):
    with make_watcher(clipboard, store, poll_interval=0.01) as watcher:
        assert watcher.running
        clipboard.set(text="threaded")
        deadline = time.time() + 2.0
        while not store.list() and time.time() < deadline:
            time.sleep(0.01)

    assert not watcher.running
    assert store.list()[0].content == "threaded"


def test_start_logs_poll_interval(clipboard, store, caplog):
    caplog.set_level(logging.INFO, logger="clipterminal.services.clipboard_watcher")

    with make_watcher(clipboard, store, poll_interval=0.25):
        pass

    assert "Starting clipboard polling (interval=0.25s)" in caplog.text
