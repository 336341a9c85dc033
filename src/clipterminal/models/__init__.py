from clipterminal.models.clipboard_item import (
	IMAGE_PLACEHOLDER,
	ClipboardItem,
	ClipboardSnapshot,
	ItemKind,
	new_item_id,
)

__all__ = [
	'IMAGE_PLACEHOLDER',
	'ClipboardItem',
	'ClipboardSnapshot',
	'ItemKind',
	'new_item_id',
]
