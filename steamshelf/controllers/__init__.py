"""Sync progress tracking and debounced search."""

from .sync_progress_tracker import SyncProgress
from .search_debouncer import SearchDebouncer, SEARCH_QUIET_PERIOD

__all__ = [
    'SyncProgress',
    'SearchDebouncer',
    'SEARCH_QUIET_PERIOD',
]
