"""
Tests for SyncProgress phase and image counters.
"""
import pytest

from steamshelf.controllers.sync_progress_tracker import SyncProgress


def test_initial_state():
    progress = SyncProgress().to_dict()
    assert progress['status'] == 'idle'
    assert progress['progress_percent'] == 0
    assert progress['images_total'] == 0


def test_phase_percentages():
    progress = SyncProgress()
    progress.status = 'fetching'
    assert progress.to_dict()['progress_percent'] == 0
    progress.status = 'saving'
    assert progress.to_dict()['progress_percent'] == 40
    progress.status = 'complete'
    assert progress.to_dict()['progress_percent'] == 100


@pytest.mark.asyncio
async def test_image_progress_completes():
    progress = SyncProgress()
    progress.add_images(4)
    assert progress.status == 'images'

    await progress.increment_images(cached=True)
    await progress.increment_images(cached=False)
    assert progress.to_dict()['progress_percent'] == 75

    await progress.increment_images(cached=True)
    assert await progress.increment_images(cached=True) == 4
    assert progress.status == 'complete'
    assert progress.images_cached == 3


def test_reset():
    progress = SyncProgress()
    progress.add_images(2)
    progress.error = "boom"
    progress.reset()
    assert progress.to_dict() == SyncProgress().to_dict()
