"""
LibraryManager - Owns the in-memory library and keeps it in step with Steam
and the local caches.

Responsibilities:
- Load the cached library at startup
- Sync the owned games list from the library source (merge by app ID, persist)
- Materialize cover images through the image cache
- Walk the image fallback chain when a displayed image fails, persisting each step
- Fetch descriptions lazily
- Hold the search snapshot and answer searches against it
- Full reset of both caches and the collection

The manager is the only thing that mutates the collection, and it does so on
the event loop. Network and disk work is awaited (aiohttp, or the default
executor for blocking file I/O) and its result is applied afterwards, after
checking that the game it belongs to is still in the library.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from steamshelf.cache.games_cache import GamesCache
from steamshelf.cache.image_cache import ImageCache
from steamshelf.controllers.sync_progress_tracker import SyncProgress
from steamshelf.services.search_service import LibrarySnapshot, SearchService, make_snapshot
from steamshelf.stores.base import DESCRIPTION_UNAVAILABLE, Game, LibrarySource
from steamshelf.utils.artwork import get_fallback_image_url, is_primary_reference

logger = logging.getLogger(__name__)

# Concurrent image downloads
MAX_CONCURRENT_IMAGES = 8

# Change event fields
FIELD_DISPLAY_IMAGE = "display_image"
FIELD_DESCRIPTION = "description"
FIELD_ADDED = "added"
FIELD_REMOVED = "removed"

ChangeCallback = Callable[[int, str], Any]


class LibraryManager:
    """Orchestrates sync, image materialization, persistence and search."""

    def __init__(
        self,
        source: LibrarySource,
        games_cache: GamesCache,
        image_cache: ImageCache,
        search_service: Optional[SearchService] = None,
        sync_progress: Optional[SyncProgress] = None,
        max_concurrent_images: int = MAX_CONCURRENT_IMAGES,
    ):
        """Initialize LibraryManager with its collaborators.

        Args:
            source: LibrarySource used for the owned games list and descriptions
            games_cache: GamesCache persisting the collection
            image_cache: ImageCache holding cover images
            search_service: SearchService running filters off the event loop
            sync_progress: SyncProgress tracker (a fresh one is created if omitted)
            max_concurrent_images: Limit on parallel image downloads
        """
        self.source = source
        self.games_cache = games_cache
        self.image_cache = image_cache
        self.search_service = search_service or SearchService()
        self.sync_progress = sync_progress or SyncProgress()

        # app_id -> Game, in arrival order
        self._games: Dict[int, Game] = {}
        self._snapshot: LibrarySnapshot = ()

        self._listeners: List[ChangeCallback] = []
        self._image_tasks: Set[asyncio.Task] = set()
        self._image_semaphore = asyncio.Semaphore(max_concurrent_images)

        # Sync state
        self._sync_lock = asyncio.Lock()
        self._is_syncing = False

        # Only one cache write at a time
        self._save_lock = asyncio.Lock()
        # Display references changed since the last image batch was saved
        self._images_dirty = False

    # ---- collection access ----

    @property
    def games(self) -> List[Game]:
        """Games in arrival order."""
        return list(self._games.values())

    def __len__(self) -> int:
        return len(self._games)

    def __contains__(self, app_id: int) -> bool:
        return app_id in self._games

    def get_game(self, app_id: int) -> Optional[Game]:
        return self._games.get(app_id)

    def _is_current(self, game: Game) -> bool:
        """True if game is still the library's entry for its app ID."""
        return self._games.get(game.app_id) is game

    def sorted_games(self) -> List[Game]:
        """Games ordered by name, ascending and case-insensitive."""
        return sorted(self._games.values(), key=lambda g: (g.name.casefold(), g.app_id))

    def visible_games(self, matches: Optional[Set[int]]) -> List[Game]:
        """Sorted games filtered by a search result (None shows everything)."""
        games = self.sorted_games()
        if matches is None:
            return games
        return [game for game in games if game.app_id in matches]

    def count_label(self, matches: Optional[Set[int]] = None) -> str:
        return f"{len(self.visible_games(matches))} Games"

    # ---- change notification ----

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register callback(app_id, field) for per-game change events.

        Returns:
            Function that removes the subscription
        """
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, app_id: int, field: str) -> None:
        for callback in list(self._listeners):
            try:
                callback(app_id, field)
            except Exception as e:
                logger.error(f"[Library] Change listener failed for {app_id}/{field}: {e}")

    # ---- search ----

    @property
    def snapshot(self) -> LibrarySnapshot:
        return self._snapshot

    def refresh_snapshot(self) -> LibrarySnapshot:
        """Take a new immutable search snapshot of the collection."""
        self._snapshot = make_snapshot(self._games.values())
        return self._snapshot

    async def search(self, query: Optional[str]) -> Optional[Set[int]]:
        """Filter the current snapshot. None means no filter."""
        return await self.search_service.filter_games(self._snapshot, query)

    # ---- persistence ----

    async def save(self) -> bool:
        """Persist the whole collection.

        The records are copied on the event loop before the write starts, and
        writes are serialized, so the file always holds one consistent batch.
        """
        games = [dataclasses.replace(game) for game in self._games.values()]
        async with self._save_lock:
            loop = asyncio.get_running_loop()
            write = loop.run_in_executor(None, self.games_cache.save, games)
            try:
                return await asyncio.shield(write)
            except asyncio.CancelledError:
                # Hold the lock until the worker thread has finished writing
                await asyncio.wait([write])
                raise

    async def load(self, materialize: bool = True) -> int:
        """Load the cached library into the collection.

        With materialize, games whose image has not been resolved yet, or is
        still the primary artwork, get an image materialization scheduled.
        Games that already moved down the fallback chain keep their saved
        reference.

        Returns:
            Number of games added to the collection
        """
        loop = asyncio.get_running_loop()
        cached = await loop.run_in_executor(None, self.games_cache.load)

        added = 0
        for game in cached:
            if game.app_id in self._games:
                continue
            self._games[game.app_id] = game
            added += 1
            self._notify(game.app_id, FIELD_ADDED)
            if materialize and (game.display_image is None or is_primary_reference(game.display_image, game.app_id)):
                self._schedule_image(game)

        self.refresh_snapshot()
        logger.info(f"[Library] Loaded {added} games from cache")
        return added

    # ---- sync ----

    async def sync(self, credentials) -> Dict[str, Any]:
        """Fetch the owned games list and merge new games into the library.

        Games already in the library (by app ID) are left untouched, so
        repeated syncs never duplicate anything. The cache is written only
        when at least one game was added.

        Args:
            credentials: SteamCredentials for the library source

        Returns:
            Dict with success, error, fetched_count and added_count
        """
        if credentials is None or not credentials.is_complete():
            logger.warning("[Sync] Sync requested without Steam API key and Steam ID")
            return {
                'success': False,
                'error': 'errors.missingCredentials',
                'fetched_count': 0,
                'added_count': 0,
            }

        if self._is_syncing:
            logger.warning("[Sync] Sync already in progress, ignoring request")
            return {
                'success': False,
                'error': 'errors.syncInProgress',
                'fetched_count': 0,
                'added_count': 0,
            }

        async with self._sync_lock:
            self._is_syncing = True
            try:
                logger.info(f"[Sync] Fetching owned games from {self.source.source_name}...")
                self.sync_progress.status = "fetching"
                self.sync_progress.error = None

                fetched = await self.source.fetch_owned_games(credentials)
                self.sync_progress.total_games = len(fetched)

                # === MERGE ===
                self.sync_progress.status = "merging"
                added_games = []
                for game in fetched:
                    if game.app_id in self._games:
                        continue
                    self._games[game.app_id] = game
                    added_games.append(game)
                    self._notify(game.app_id, FIELD_ADDED)
                self.sync_progress.added_games = len(added_games)

                for game in added_games:
                    self._schedule_image(game)

                # === PERSIST ===
                if added_games:
                    self.sync_progress.status = "saving"
                    await self.save()

                self.refresh_snapshot()

                self.sync_progress.status = "images" if self._image_tasks else "complete"
                logger.info(f"[Sync] Fetched {len(fetched)} games, added {len(added_games)} new")
                return {
                    'success': True,
                    'error': None,
                    'fetched_count': len(fetched),
                    'added_count': len(added_games),
                }

            except Exception as e:
                logger.error(f"[Sync] Error syncing library: {e}")
                self.sync_progress.status = "error"
                self.sync_progress.error = str(e)
                return {'success': False, 'error': str(e), 'fetched_count': 0, 'added_count': 0}

            finally:
                self._is_syncing = False

    # ---- images ----

    def _schedule_image(self, game: Game) -> asyncio.Task:
        task = asyncio.create_task(self._materialize_limited(game))
        self._image_tasks.add(task)
        task.add_done_callback(self._image_tasks.discard)
        self.sync_progress.add_images(1)
        return task

    async def _materialize_limited(self, game: Game) -> Optional[str]:
        async with self._image_semaphore:
            result = await self.materialize_image(game)
        if result is not None:
            self._images_dirty = True
        await self.sync_progress.increment_images(cached=self.image_cache.exists_locally(game.app_id))

        # The last task of a batch persists the resolved references
        current = asyncio.current_task()
        batch_pending = any(task is not current and not task.done() for task in self._image_tasks)
        if self._images_dirty and not batch_pending:
            self._images_dirty = False
            await self.save()
        return result

    async def wait_for_images(self) -> None:
        """Wait until every scheduled image materialization has finished."""
        while True:
            pending = [task for task in self._image_tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def materialize_image(self, game: Game) -> Optional[str]:
        """Resolve a game's display image through the local cache.

        Uses the cached file when present, otherwise downloads the primary
        artwork into the cache. If that fails the primary URL is displayed
        directly and the fallback chain is left to handle_display_failure.

        Returns:
            The new display reference, or None if the game left the library
            while this was running
        """
        loop = asyncio.get_running_loop()
        try:
            exists = await loop.run_in_executor(None, self.image_cache.exists_locally, game.app_id)
            if not exists:
                exists = await self.image_cache.download(game.app_id, game.image_url)

            if exists:
                resolved = str(self.image_cache.get_local_image_path(game.app_id))
            else:
                resolved = game.image_url
        except Exception as e:
            logger.error(f"[Library] Image load error for {game.app_id}: {e}")
            resolved = game.image_url

        if not self._is_current(game):
            logger.debug(f"[Library] Ignoring image result for {game.app_id}: no longer in library")
            return None

        game.display_image = resolved
        self._notify(game.app_id, FIELD_DISPLAY_IMAGE)
        return resolved

    async def handle_display_failure(self, game: Game) -> Optional[str]:
        """Advance a game's image one step down the fallback chain.

        Called when the current display reference could not be shown. The
        whole collection is saved right away so the failed reference is not
        tried again on the next run.

        Returns:
            The new display reference (None if the game is no longer in the library)
        """
        if not self._is_current(game):
            logger.debug(f"[Library] Ignoring display failure for {game.app_id}: no longer in library")
            return None

        # Nothing resolved yet means the primary artwork was being shown
        current = game.display_image or game.image_url
        next_ref = get_fallback_image_url(game.app_id, current, game.icon_url)
        if next_ref == current:
            return current

        logger.debug(f"[Library] Image fallback for {game.app_id}: {current} -> {next_ref}")
        game.display_image = next_ref
        self._notify(game.app_id, FIELD_DISPLAY_IMAGE)
        await self.save()
        return next_ref

    # ---- descriptions ----

    async def ensure_description(self, game: Game) -> str:
        """Fetch the description once; later calls return the stored text."""
        if game.description:
            return game.description

        try:
            text = await self.source.fetch_description(game.app_id)
        except Exception as e:
            logger.error(f"[Library] Error fetching description for {game.app_id}: {e}")
            text = DESCRIPTION_UNAVAILABLE
        text = text or DESCRIPTION_UNAVAILABLE

        if not self._is_current(game):
            return text

        # A concurrent call may have filled it in while this one was waiting
        if not game.description:
            game.description = text
            self._notify(game.app_id, FIELD_DESCRIPTION)
        return game.description

    # ---- reset ----

    async def reset_all(self) -> Dict[str, Any]:
        """Delete all cached images and the games cache, and empty the library.

        Files that can't be deleted are skipped; the count reports what was
        actually removed.
        """
        removed_ids = list(self._games)
        self._games.clear()
        self.refresh_snapshot()

        # Cancelled tasks may still be finishing a file write
        tasks = list(self._image_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._images_dirty = False

        loop = asyncio.get_running_loop()
        deleted_images = await loop.run_in_executor(None, self.image_cache.clear_all)
        async with self._save_lock:
            metadata_deleted = await loop.run_in_executor(None, self.games_cache.delete)

        self.sync_progress.reset()
        for app_id in removed_ids:
            self._notify(app_id, FIELD_REMOVED)

        logger.info(f"[Library] Cache cleared: deleted {deleted_images} images and {len(removed_ids)} games")
        return {
            'success': True,
            'deleted_images': deleted_images,
            'removed_games': len(removed_ids),
            'metadata_deleted': metadata_deleted,
        }

    async def close(self) -> None:
        """Cancel outstanding image work and close network sessions."""
        for task in list(self._image_tasks):
            task.cancel()
        await asyncio.gather(*list(self._image_tasks), return_exceptions=True)
        await self.source.close()
        await self.image_cache.close()
