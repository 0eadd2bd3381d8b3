"""Services for the library core."""

from .search_service import SearchService, filter_games, make_snapshot
from .library_manager import LibraryManager

__all__ = ['LibraryManager', 'SearchService', 'filter_games', 'make_snapshot']
