import hashlib
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Tuple
from urllib.parse import unquote, urlparse

from clipterminal.clipboard.base import ClipboardBackend
from clipterminal.errors import ClipboardReadError, ClipboardWriteError
from clipterminal.models import ClipboardSnapshot

Reader = Callable[[str], Optional[bytes]]


class LinuxClipboard(ClipboardBackend):
    """wl-clipboard on Wayland, xclip otherwise.

    Neither tool exposes a change counter, so the change token is a digest
    of the offered targets and their contents. The snapshot read to compute
    the token is kept and handed out by the following ``read_snapshot``.
    """

    _FILE_TARGETS = {"x-special/gnome-copied-files", "text/uri-list"}
    _IMAGE_TARGETS = (
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/bmp",
        "image/x-ms-bmp",
        "image/webp",
        "image/tiff",
    )
    _TEXT_TARGETS = {
        "text/plain;charset=utf-8",
        "text/plain;charset=utf8",
        "text/plain",
        "utf8_string",
        "string",
    }
    _TIMEOUT = 1.5

    def __init__(self) -> None:
        self._pending: Optional[Tuple[str, ClipboardSnapshot]] = None

    def current_change_token(self) -> str:
        snapshot = self._read()
        token = self._digest(snapshot)
        self._pending = (token, snapshot)
        return token

    def read_snapshot(self) -> ClipboardSnapshot:
        if self._pending is not None:
            _, snapshot = self._pending
            self._pending = None
            return snapshot
        return self._read()

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------
    def _read(self) -> ClipboardSnapshot:
        if os.environ.get("WAYLAND_DISPLAY") and shutil.which("wl-paste"):
            return self._from_wayland()
        if shutil.which("xclip"):
            return self._from_xclip()
        raise ClipboardReadError("Neither wl-paste nor xclip is available")

    def _from_wayland(self) -> ClipboardSnapshot:
        listing = self._run_command(["wl-paste", "--list-types"])
        if listing is None:
            # wl-paste exits non-zero when the clipboard is empty
            return ClipboardSnapshot()

        def reader(target: str) -> Optional[bytes]:
            command = ["wl-paste", "--type", target]
            if target.lower().startswith("text/"):
                command.append("--no-newline")
            return self._run_command(command)

        return self._extract_from_types(self._parse_type_list(listing), reader)

    def _from_xclip(self) -> ClipboardSnapshot:
        listing = self._run_command(["xclip", "-selection", "clipboard", "-t", "TARGETS", "-o"])
        if listing is None:
            return ClipboardSnapshot()

        def reader(target: str) -> Optional[bytes]:
            return self._run_command(["xclip", "-selection", "clipboard", "-t", target, "-o"])

        return self._extract_from_types(self._parse_type_list(listing), reader)

    def _extract_from_types(self, types: List[str], reader: Reader) -> ClipboardSnapshot:
        lowered = {target.lower(): target for target in types}

        file_path = None
        for target_lower, target in lowered.items():
            if target_lower in self._FILE_TARGETS:
                data = reader(target)
                paths = self._parse_paths(data) if data else []
                if paths:
                    file_path = str(paths[0])
                    break

        image_bytes = None
        for target_lower in self._IMAGE_TARGETS:
            if target_lower in lowered:
                image_bytes = reader(lowered[target_lower]) or None
                if image_bytes:
                    break

        text = None
        for target_lower, target in lowered.items():
            if target_lower in self._TEXT_TARGETS:
                data = reader(target)
                if data:
                    text = data.decode("utf-8", errors="ignore")
                    break

        return ClipboardSnapshot(file_path=file_path, image_bytes=image_bytes, text=text)

    @staticmethod
    def _digest(snapshot: ClipboardSnapshot) -> str:
        digest = hashlib.md5()
        digest.update(b"f:" + (snapshot.file_path or "").encode("utf-8"))
        digest.update(b"|i:" + (snapshot.image_bytes or b""))
        digest.update(b"|t:" + (snapshot.text or "").encode("utf-8"))
        return digest.hexdigest()

    def _parse_type_list(self, data: Optional[bytes]) -> List[str]:
        if not data:
            return []
        text = data.decode("utf-8", errors="ignore")
        return [line.strip() for line in text.splitlines() if line.strip()]

    def _parse_paths(self, data: bytes) -> List[Path]:
        text = data.decode("utf-8", errors="ignore")
        lines = [line.strip() for line in text.replace("\r", "\n").split("\n") if line.strip()]
        if lines and lines[0].lower() in {"copy", "cut"}:
            lines = lines[1:]

        paths: List[Path] = []
        for entry in lines:
            if entry.startswith("#"):
                continue
            parsed = urlparse(entry)
            if parsed.scheme == "file":
                paths.append(Path(unquote(parsed.path)))
            elif not parsed.scheme:
                paths.append(Path(unquote(entry)))
        return paths

    def _run_command(self, command: List[str]) -> Optional[bytes]:
        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
                timeout=self._TIMEOUT,
            )
            return result.stdout
        except subprocess.CalledProcessError:
            return None
        except (subprocess.TimeoutExpired, OSError) as e:
            raise ClipboardReadError(f"Clipboard command failed: {command[0]}", e) from e

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------
    def _write(self, mime: str, data: bytes) -> None:
        if os.environ.get("WAYLAND_DISPLAY") and shutil.which("wl-copy"):
            command = ["wl-copy", "--type", mime]
        elif shutil.which("xclip"):
            command = ["xclip", "-selection", "clipboard", "-t", mime]
        else:
            raise ClipboardWriteError("Neither wl-copy nor xclip is available")

        try:
            subprocess.run(command, input=data, check=True, timeout=2.0)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            raise ClipboardWriteError(f"Clipboard command failed: {command[0]}", e) from e
        self._pending = None

    def write_text(self, text: str) -> None:
        self._write("text/plain;charset=utf-8", text.encode("utf-8"))

    def write_image(self, data: bytes) -> None:
        self._write("image/png", data)

    def write_file(self, path: str) -> None:
        self._write("text/uri-list", Path(path).resolve().as_uri().encode("utf-8"))
