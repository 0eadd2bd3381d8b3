"""Debounced search for interactive input.

Each keystroke calls request(query). The search only starts once input has
been quiet for the quiet period, and only the newest request's results are
delivered: a slower, older search finishing late is dropped.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

SEARCH_QUIET_PERIOD = 0.2  # seconds

SearchFunc = Callable[[str], Awaitable[Optional[Set[int]]]]
ResultCallback = Callable[[str, Optional[Set[int]]], Any]


class SearchDebouncer:
    """Runs the latest search after input goes quiet."""

    def __init__(self, search: SearchFunc, on_results: ResultCallback, quiet_period: float = SEARCH_QUIET_PERIOD):
        """
        Args:
            search: Coroutine function mapping a query to matching app IDs (None = show all)
            on_results: Called with (query, matches) for the newest request only
            quiet_period: Seconds of silence required before searching
        """
        self._search = search
        self._on_results = on_results
        self.quiet_period = quiet_period
        self._generation = 0
        self._pending: Optional[asyncio.Task] = None

    def request(self, query: str) -> asyncio.Task:
        """Schedule a search for query, superseding any earlier request."""
        self._generation += 1
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = asyncio.create_task(self._run(self._generation, query))
        return self._pending

    async def _run(self, generation: int, query: str) -> None:
        await asyncio.sleep(self.quiet_period)
        if generation != self._generation:
            return

        try:
            matches = await self._search(query)
        except Exception as e:
            logger.error(f"[Search] Search for '{query}' failed: {e}")
            return

        if generation != self._generation:
            logger.debug(f"[Search] Dropping superseded results for '{query}'")
            return

        try:
            self._on_results(query, matches)
        except Exception as e:
            logger.error(f"[Search] Result callback failed for '{query}': {e}")

    async def flush(self) -> None:
        """Wait for the pending search, if any, to finish."""
        if self._pending is None:
            return
        try:
            await self._pending
        except asyncio.CancelledError:
            pass

    def cancel(self) -> None:
        self._generation += 1
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
