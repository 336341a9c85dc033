from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import BaseModel, TypeAdapter, ValidationError

from clipterminal.errors import PersistenceError
from clipterminal.models import ClipboardItem, ItemKind


class ClipboardRecord(BaseModel):
    """On-disk shape of one history entry."""

    id: str
    date: datetime
    kind: ItemKind
    content: str
    assetRef: Optional[str] = None
    fileSize: Optional[int] = None
    width: Optional[float] = None
    height: Optional[float] = None
    title: Optional[str] = None
    description: Optional[str] = None
    previewAssetRef: Optional[str] = None
    isLink: bool = False
    enrichmentPending: bool = False

    @classmethod
    def from_item(cls, item: ClipboardItem) -> "ClipboardRecord":
        return cls(
            id=item.id,
            date=item.timestamp,
            kind=item.kind,
            content=item.content,
            assetRef=item.asset_ref,
            fileSize=item.file_size,
            width=item.width,
            height=item.height,
            title=item.title,
            description=item.description,
            previewAssetRef=item.preview_asset_ref,
            isLink=item.is_link,
            enrichmentPending=item.enrichment_pending,
        )

    def to_item(self) -> ClipboardItem:
        return ClipboardItem(
            id=self.id,
            timestamp=self.date,
            kind=self.kind,
            content=self.content,
            asset_ref=self.assetRef,
            file_size=self.fileSize,
            width=self.width,
            height=self.height,
            title=self.title,
            description=self.description,
            preview_asset_ref=self.previewAssetRef,
            is_link=self.isLink,
            enrichment_pending=self.enrichmentPending,
        )


_RECORDS = TypeAdapter(List[ClipboardRecord])


class HistoryFile:
    """Whole-file JSON snapshot of the ordered history."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def save(self, items: Sequence[ClipboardItem]) -> None:
        records = [ClipboardRecord.from_item(item) for item in items]
        payload = _RECORDS.dump_json(records, indent=2, exclude_none=True)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Could not write {self.path}", e) from e

    def load(self) -> List[ClipboardItem]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise PersistenceError(f"Could not read {self.path}", e) from e
        if not raw.strip():
            return []
        try:
            records = _RECORDS.validate_json(raw)
        except ValidationError as e:
            raise PersistenceError(f"Corrupt history file {self.path}", e) from e
        return [record.to_item() for record in records]
