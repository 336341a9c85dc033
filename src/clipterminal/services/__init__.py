"""Service layer for ClipTerminal."""

from clipterminal.services.clipboard_watcher import ClipboardWatcher
from clipterminal.services.enrichment_service import EnrichmentService
from clipterminal.services.history_store import HistoryStore

__all__ = ["ClipboardWatcher", "EnrichmentService", "HistoryStore"]
