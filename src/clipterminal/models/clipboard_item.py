from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

import ulid


class ItemKind(str, Enum):
	TEXT = "text"
	IMAGE = "image"
	FILE = "file"


IMAGE_PLACEHOLDER = "Image"


def new_item_id() -> str:
	return str(ulid.new())


@dataclass(frozen=True)
class ClipboardItem:
	"""Immutable history entry; changes go through ``evolve`` and keep the id."""
	id: str
	timestamp: datetime
	kind: ItemKind
	content: str
	asset_ref: Optional[str] = None
	file_size: Optional[int] = None
	width: Optional[float] = None
	height: Optional[float] = None
	title: Optional[str] = None
	description: Optional[str] = None
	preview_asset_ref: Optional[str] = None
	is_link: bool = False
	enrichment_pending: bool = False

	@classmethod
	def create(cls, kind: ItemKind, content: str, **fields) -> "ClipboardItem":
		item_id = fields.pop("id", None) or new_item_id()
		timestamp = fields.pop("timestamp", None) or datetime.now()
		return cls(id=item_id, timestamp=timestamp, kind=kind, content=content, **fields)

	def dedupe_key(self) -> Optional[Tuple[ItemKind, str]]:
		if self.kind is ItemKind.IMAGE:
			return None
		return self.kind, self.content

	def asset_refs(self) -> Tuple[str, ...]:
		return tuple(ref for ref in (self.asset_ref, self.preview_asset_ref) if ref)

	def evolve(self, **changes) -> "ClipboardItem":
		if "id" in changes and changes["id"] != self.id:
			raise ValueError("ClipboardItem.id is immutable")
		return replace(self, **changes)


@dataclass(frozen=True)
class ClipboardSnapshot:
	"""Representations present on the clipboard at one instant."""
	file_path: Optional[str] = None
	image_bytes: Optional[bytes] = None
	text: Optional[str] = None

	def is_empty(self) -> bool:
		return not (self.file_path or self.image_bytes or self.text)
