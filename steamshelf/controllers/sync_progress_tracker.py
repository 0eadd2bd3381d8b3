"""Sync progress tracking for library synchronization.

Tracks progress through the sync phases and the image materialization that
follows, with percentage-based progress for a progress bar.
"""

import asyncio
from typing import Dict, Any


class SyncProgress:
    """Track library sync progress with phase-based percentage tracking.

    Each sync phase has an allocated percentage range for smooth progress bar updates.
    """

    # Phase percentage allocations: (start_pct, end_pct)
    PHASE_RANGES = {
        'idle': (0, 0),
        'fetching': (0, 30),
        'merging': (30, 40),
        'saving': (40, 50),
        'images': (50, 100),
        'complete': (100, 100),
        'error': (100, 100),
    }

    def __init__(self):
        self.total_games = 0
        self.added_games = 0
        self.status = "idle"  # idle, fetching, merging, saving, images, complete, error
        self.error = None

        # Image materialization tracking
        self.images_total = 0
        self.images_resolved = 0
        self.images_cached = 0

        # Lock for updates from concurrent image tasks
        self._lock = asyncio.Lock()

    def reset(self) -> None:
        self.total_games = 0
        self.added_games = 0
        self.status = "idle"
        self.error = None
        self.images_total = 0
        self.images_resolved = 0
        self.images_cached = 0

    def add_images(self, count: int) -> None:
        """Register newly scheduled image materializations."""
        self.images_total += count
        if count and self.status in ('idle', 'complete'):
            self.status = 'images'

    async def increment_images(self, cached: bool) -> int:
        """Record one finished materialization; returns the resolved count."""
        async with self._lock:
            self.images_resolved += 1
            if cached:
                self.images_cached += 1
            if self.status == 'images' and self.images_resolved >= self.images_total:
                self.status = 'complete'
            return self.images_resolved

    def _calculate_progress(self) -> int:
        """Calculate progress based on current phase and its percentage allocation."""
        start_pct, end_pct = self.PHASE_RANGES.get(self.status, (0, 0))

        # Image phase uses its counters for sub-progress within the phase range
        if self.status == 'images' and self.images_total > 0:
            sub_progress = self.images_resolved / self.images_total
            return int(start_pct + (end_pct - start_pct) * sub_progress)

        return start_pct

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_games': self.total_games,
            'added_games': self.added_games,
            'status': self.status,
            'progress_percent': self._calculate_progress(),
            'error': self.error,
            'images_total': self.images_total,
            'images_resolved': self.images_resolved,
            'images_cached': self.images_cached,
        }
