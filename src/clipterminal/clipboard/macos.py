from pathlib import Path

from clipterminal.clipboard.base import ClipboardBackend
from clipterminal.errors import ClipboardReadError, ClipboardWriteError
from clipterminal.models import ClipboardSnapshot

try:
    from AppKit import (
        NSPasteboard,
        NSPasteboardTypeFileURL,
        NSPasteboardTypePNG,
        NSPasteboardTypeString,
        NSPasteboardTypeTIFF,
    )
    from Foundation import NSURL, NSData
    HAS_APPKIT = True
except ImportError:
    HAS_APPKIT = False


class MacOSClipboard(ClipboardBackend):
    """``NSPasteboard.generalPasteboard`` with its ``changeCount`` as the token."""

    def __init__(self) -> None:
        if not HAS_APPKIT:
            raise ClipboardReadError("pyobjc (AppKit) is required on macOS")
        self._pasteboard = NSPasteboard.generalPasteboard()

    def current_change_token(self) -> int:
        try:
            return int(self._pasteboard.changeCount())
        except Exception as e:
            raise ClipboardReadError("Could not read pasteboard change count", e) from e

    def read_snapshot(self) -> ClipboardSnapshot:
        try:
            types = list(self._pasteboard.types() or [])
            return ClipboardSnapshot(
                file_path=self._get_file(types),
                image_bytes=self._get_image(types),
                text=self._get_text(types),
            )
        except Exception as e:
            raise ClipboardReadError("Could not read pasteboard", e) from e

    def _get_file(self, types):
        if NSPasteboardTypeFileURL not in types:
            return None
        url_string = self._pasteboard.stringForType_(NSPasteboardTypeFileURL)
        if not url_string:
            return None
        url = NSURL.URLWithString_(url_string)
        if url is None or not url.isFileURL():
            return None
        return str(url.path())

    def _get_image(self, types):
        for pb_type in (NSPasteboardTypePNG, NSPasteboardTypeTIFF):
            if pb_type in types:
                data = self._pasteboard.dataForType_(pb_type)
                if data:
                    return bytes(data)
        return None

    def _get_text(self, types):
        if NSPasteboardTypeString not in types:
            return None
        text = self._pasteboard.stringForType_(NSPasteboardTypeString)
        return str(text) if text else None

    def write_text(self, text: str) -> None:
        self._pasteboard.clearContents()
        if not self._pasteboard.setString_forType_(text, NSPasteboardTypeString):
            raise ClipboardWriteError("Pasteboard rejected text")

    def write_image(self, data: bytes) -> None:
        self._pasteboard.clearContents()
        ns_data = NSData.dataWithBytes_length_(data, len(data))
        if not self._pasteboard.setData_forType_(ns_data, NSPasteboardTypePNG):
            raise ClipboardWriteError("Pasteboard rejected image")

    def write_file(self, path: str) -> None:
        self._pasteboard.clearContents()
        file_url = NSURL.fileURLWithPath_(str(Path(path)))
        if not self._pasteboard.writeObjects_([file_url]):
            raise ClipboardWriteError(f"Pasteboard rejected file {path}")
