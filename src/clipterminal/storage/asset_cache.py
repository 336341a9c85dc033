import logging
from pathlib import Path
from typing import Iterable, List, Optional

import ulid

from clipterminal.errors import AssetNotFoundError, AssetWriteError

logger = logging.getLogger(__name__)

PREVIEW_SUFFIX = "-preview"


class AssetCache:
    """One file per cached blob under ``base_dir``, addressed by file name."""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def _ensure_dir(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, ref: str) -> Path:
        if not ref or "/" in ref or "\\" in ref or ref in {".", ".."}:
            raise ValueError(f"Invalid asset reference: {ref!r}")
        return self.base_dir / ref

    def store(
        self,
        data: bytes,
        kind_hint: str = "png",
        item_id: Optional[str] = None,
        suffix: str = "",
    ) -> str:
        stem = item_id or str(ulid.new())
        extension = (kind_hint or "bin").lstrip(".").lower()
        ref = f"{stem}{suffix}.{extension}"

        try:
            self._ensure_dir()
            file_path = self.path_for(ref)
            tmp_path = file_path.with_name(f".{ref}.tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(file_path)
        except OSError as e:
            raise AssetWriteError(f"Failed to store asset {ref}", e) from e

        logger.debug(f"Stored asset {ref} ({len(data)} bytes)")
        return ref

    def load(self, ref: str) -> bytes:
        try:
            return self.path_for(ref).read_bytes()
        except (OSError, ValueError) as e:
            raise AssetNotFoundError(f"Asset not found: {ref}", e) from e

    def exists(self, ref: str) -> bool:
        try:
            return self.path_for(ref).is_file()
        except ValueError:
            return False

    def delete(self, ref: str) -> None:
        try:
            self.path_for(ref).unlink()
            logger.debug(f"Deleted asset {ref}")
        except FileNotFoundError:
            logger.debug(f"Asset already gone: {ref}")
        except (OSError, ValueError) as e:
            logger.warning(f"Could not delete asset {ref}: {e}")

    def refs(self) -> List[str]:
        if not self.base_dir.exists():
            return []
        try:
            return sorted(
                path.name for path in self.base_dir.iterdir()
                if path.is_file() and not path.name.startswith(".")
            )
        except OSError as e:
            logger.warning(f"Could not list assets in {self.base_dir}: {e}")
            return []

    def prune(self, keep: Iterable[str]) -> int:
        """Delete every cached file not named in ``keep``; returns how many went."""
        keep_set = set(keep)
        removed = 0
        for ref in self.refs():
            if ref not in keep_set:
                self.delete(ref)
                removed += 1
        if removed:
            logger.info(f"Pruned {removed} orphaned asset(s)")
        return removed
