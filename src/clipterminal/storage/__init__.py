from clipterminal.storage.asset_cache import PREVIEW_SUFFIX, AssetCache
from clipterminal.storage.history_file import ClipboardRecord, HistoryFile

__all__ = [
    'PREVIEW_SUFFIX',
    'AssetCache',
    'ClipboardRecord',
    'HistoryFile',
]
