"""
SearchService - Filters the library by name without blocking the event loop.

Searches never look at the live collection. They run over a snapshot: an
immutable tuple of (app_id, name) entries taken by the LibraryManager after
load, sync or reset.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Set, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SnapshotEntry:
    app_id: int
    name: str


LibrarySnapshot = Tuple[SnapshotEntry, ...]


def make_snapshot(games: Iterable) -> LibrarySnapshot:
    """Copy the searchable fields of games into an immutable snapshot."""
    return tuple(SnapshotEntry(app_id=game.app_id, name=game.name) for game in games)


def filter_games(snapshot: LibrarySnapshot, query: Optional[str]) -> Optional[Set[int]]:
    """Find the app IDs whose name contains query, ignoring case.

    Returns:
        None when query is empty or whitespace (no filter, show everything),
        otherwise the set of matching app IDs (possibly empty)
    """
    if query is None or not query.strip():
        return None

    needle = query.strip().casefold()
    return {entry.app_id for entry in snapshot if needle in entry.name.casefold()}


class SearchService:
    """Runs filter_games in the default executor."""

    async def filter_games(self, snapshot: LibrarySnapshot, query: Optional[str]) -> Optional[Set[int]]:
        if query is None or not query.strip():
            return None

        loop = asyncio.get_running_loop()
        matches = await loop.run_in_executor(None, filter_games, snapshot, query)
        logger.debug(f"[Search] '{query.strip()}' matched {len(matches)}/{len(snapshot)} games")
        return matches
