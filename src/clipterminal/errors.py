"""Exception hierarchy shared by the clipboard, storage and enrichment layers."""

from typing import Optional


class ClipTerminalError(Exception):

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.original_error = original_error

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.original_error:
            return f"{base_msg} (caused by {type(self.original_error).__name__}: {self.original_error})"
        return base_msg


class ClipboardReadError(ClipTerminalError):
    """The clipboard could not be read; the watcher retries on the next tick."""


class ClipboardWriteError(ClipTerminalError):
    pass


class AssetWriteError(ClipTerminalError):
    pass


class AssetNotFoundError(ClipTerminalError):
    pass


class NetworkFetchError(ClipTerminalError):
    pass


class FetchTimeoutError(NetworkFetchError):
    pass


class PersistenceError(ClipTerminalError):
    """The history file could not be written or read."""
