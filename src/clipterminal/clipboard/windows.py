import os
import struct
import time
from typing import Optional

import win32clipboard as wc
import win32con

from clipterminal.clipboard.base import ClipboardBackend
from clipterminal.errors import ClipboardReadError, ClipboardWriteError
from clipterminal.models import ClipboardSnapshot

# DROPFILES header: pFiles offset, pt.x, pt.y, fNC, fWide
_DROPFILES = struct.pack("<IiiII", 20, 0, 0, 0, 1)
_BMP_FILE_HEADER_SIZE = 14


class WindowsClipboard(ClipboardBackend):
    """win32 clipboard; ``GetClipboardSequenceNumber`` is the change token."""

    def current_change_token(self) -> int:
        try:
            return int(wc.GetClipboardSequenceNumber())
        except Exception as e:
            raise ClipboardReadError("Could not read clipboard sequence number", e) from e

    def _open(self, error_cls) -> None:
        for _ in range(3):
            try:
                wc.OpenClipboard()
                return
            except Exception:
                time.sleep(0.05)
        raise error_cls("Clipboard is held by another process")

    def read_snapshot(self) -> ClipboardSnapshot:
        self._open(ClipboardReadError)
        try:
            return ClipboardSnapshot(
                file_path=self._get_file(),
                image_bytes=self._get_image(),
                text=self._get_text(),
            )
        except Exception as e:
            raise ClipboardReadError("Could not read clipboard", e) from e
        finally:
            wc.CloseClipboard()

    def _get_file(self) -> Optional[str]:
        if not wc.IsClipboardFormatAvailable(win32con.CF_HDROP):
            return None
        files = wc.GetClipboardData(win32con.CF_HDROP)
        if isinstance(files, str):
            files = [files]
        for path in files or []:
            return os.path.normpath(path)
        return None

    def _get_image(self) -> Optional[bytes]:
        if not wc.IsClipboardFormatAvailable(win32con.CF_DIB):
            return None
        dib = wc.GetClipboardData(win32con.CF_DIB)
        if not dib:
            return None
        # Prepend a BITMAPFILEHEADER so the DIB decodes as a .bmp file
        header_size, = struct.unpack_from("<I", dib, 0)
        bit_count, = struct.unpack_from("<H", dib, 14)
        colors_used, = struct.unpack_from("<I", dib, 32) if header_size >= 36 else (0,)
        if bit_count <= 8 and not colors_used:
            colors_used = 1 << bit_count
        offset = _BMP_FILE_HEADER_SIZE + header_size + colors_used * 4
        compression, = struct.unpack_from("<I", dib, 16)
        if header_size == 40 and compression == 3:
            # BI_BITFIELDS masks follow a BITMAPINFOHEADER
            offset += 12
        file_header = struct.pack("<2sIHHI", b"BM", _BMP_FILE_HEADER_SIZE + len(dib), 0, 0, offset)
        return file_header + dib

    def _get_text(self) -> Optional[str]:
        if not wc.IsClipboardFormatAvailable(wc.CF_UNICODETEXT):
            return None
        return wc.GetClipboardData(wc.CF_UNICODETEXT) or None

    def _set(self, fmt: int, data) -> None:
        self._open(ClipboardWriteError)
        try:
            wc.EmptyClipboard()
            wc.SetClipboardData(fmt, data)
        except Exception as e:
            raise ClipboardWriteError("Could not write clipboard", e) from e
        finally:
            wc.CloseClipboard()

    def write_text(self, text: str) -> None:
        self._set(wc.CF_UNICODETEXT, text)

    def write_image(self, data: bytes) -> None:
        import io
        from PIL import Image

        with Image.open(io.BytesIO(data)) as image:
            output = io.BytesIO()
            image.convert("RGB").save(output, "BMP")
        self._set(win32con.CF_DIB, output.getvalue()[_BMP_FILE_HEADER_SIZE:])

    def write_file(self, path: str) -> None:
        names = (os.path.abspath(path) + "\0\0").encode("utf-16-le")
        self._set(win32con.CF_HDROP, _DROPFILES + names)
