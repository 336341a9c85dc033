import io
from typing import Dict, List, Optional, Union

import pytest
from PIL import Image

from clipterminal.clipboard import ClipboardBackend
from clipterminal.errors import ClipboardReadError, NetworkFetchError
from clipterminal.models import ClipboardSnapshot
from clipterminal.network import Fetcher
from clipterminal.services import HistoryStore
from clipterminal.storage import AssetCache, HistoryFile


def make_png(width: int = 4, height: int = 3, color=(255, 0, 0)) -> bytes:
    output = io.BytesIO()
    Image.new("RGB", (width, height), color).save(output, format="PNG")
    return output.getvalue()


class FakeClipboard(ClipboardBackend):
    """In-memory clipboard with a change counter, like NSPasteboard."""

    def __init__(self):
        self.change_count = 0
        self.snapshot = ClipboardSnapshot()
        self.fail_reads = False
        self.writes: List[tuple] = []

    def set(self, file_path=None, image_bytes=None, text=None) -> None:
        self.snapshot = ClipboardSnapshot(file_path=file_path, image_bytes=image_bytes, text=text)
        self.change_count += 1

    def current_change_token(self) -> int:
        if self.fail_reads:
            raise ClipboardReadError("clipboard busy")
        return self.change_count

    def read_snapshot(self) -> ClipboardSnapshot:
        if self.fail_reads:
            raise ClipboardReadError("clipboard busy")
        return self.snapshot

    def write_text(self, text: str) -> None:
        self.writes.append(("text", text))
        self.set(text=text)

    def write_image(self, data: bytes) -> None:
        self.writes.append(("image", data))
        self.set(image_bytes=data)

    def write_file(self, path: str) -> None:
        self.writes.append(("file", path))
        self.set(file_path=path)


class FakeFetcher(Fetcher):
    """Serves canned bodies; an Exception value is raised instead."""

    def __init__(self, responses: Optional[Dict[str, Union[bytes, Exception]]] = None, before_return=None):
        self.responses = dict(responses or {})
        self.before_return = before_return
        self.calls: List[tuple] = []
        self.closed = False

    async def fetch(self, url, timeout, headers=None) -> bytes:
        self.calls.append((url, timeout, dict(headers or {})))
        if self.before_return is not None:
            self.before_return(url)
        response = self.responses.get(url)
        if response is None:
            raise NetworkFetchError(f"no route to {url}")
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def assets(tmp_path):
    return AssetCache(tmp_path / "images")


@pytest.fixture
def history_file(tmp_path):
    return HistoryFile(tmp_path / "history.json")


@pytest.fixture
def store(history_file, assets):
    return HistoryStore(history_file, assets, max_items=5)


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
def png_bytes():
    return make_png()


SETTINGS_VARIABLES = (
    "CLIPTERMINAL_DATA_DIR",
    "CLIPTERMINAL_MAX_HISTORY",
    "CLIPTERMINAL_POLL_INTERVAL",
    "CLIPTERMINAL_PAGE_TIMEOUT",
    "CLIPTERMINAL_IMAGE_TIMEOUT",
    "CLIPTERMINAL_USER_AGENT",
    "CLIPTERMINAL_ENRICH_LINKS",
    "CLIPTERMINAL_LOG_LEVEL",
)


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Unset every setting; values loaded from .env files are removed afterwards too."""
    monkeypatch.chdir(tmp_path)
    for name in SETTINGS_VARIABLES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
