from abc import ABC, abstractmethod
from typing import Hashable

from clipterminal.models import ClipboardSnapshot


class ClipboardBackend(ABC):
    """Platform clipboard primitive consumed by the watcher and by ``copy``.

    Read failures raise ``ClipboardReadError``; write failures raise
    ``ClipboardWriteError``.
    """

    @abstractmethod
    def current_change_token(self) -> Hashable:
        """Value that changes whenever the clipboard contents change."""

    @abstractmethod
    def read_snapshot(self) -> ClipboardSnapshot:
        pass

    @abstractmethod
    def write_text(self, text: str) -> None:
        pass

    @abstractmethod
    def write_image(self, data: bytes) -> None:
        pass

    @abstractmethod
    def write_file(self, path: str) -> None:
        pass
