"""
ImageCache - Local cache of game cover images.

Responsibilities:
- Map an app ID to its cached file ({app_id}.jpg in the cache directory)
- Download artwork on a cache miss, treating HTTP errors as a plain miss
- Clear the whole cache, skipping files that can't be removed
"""

import asyncio
import logging
import os
import ssl
from pathlib import Path
from typing import Optional

import aiohttp
import certifi

from steamshelf.utils.paths import IMAGE_CACHE_DIR

logger = logging.getLogger(__name__)

IMAGE_EXTENSION = ".jpg"

# Image download timeout (seconds per image)
IMAGE_FETCH_TIMEOUT = 30


class ImageCache:
    """Disk cache of cover images keyed by Steam app ID."""

    def __init__(self, cache_dir: Optional[str] = None, session: Optional[aiohttp.ClientSession] = None):
        """Initialize ImageCache.

        Args:
            cache_dir: Directory holding the images; created on first download
            session: Optional aiohttp session; one is created lazily when omitted
        """
        self.cache_dir = Path(cache_dir or IMAGE_CACHE_DIR)
        self.session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self.session is None or self.session.closed:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            connector = aiohttp.TCPConnector(ssl=ssl_context, limit_per_host=8)
            self.session = aiohttp.ClientSession(connector=connector)
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        if self._owns_session and self.session is not None and not self.session.closed:
            await self.session.close()

    def get_local_image_path(self, app_id: int) -> Path:
        """Path where the image for app_id is (or would be) cached."""
        return self.cache_dir / f"{app_id}{IMAGE_EXTENSION}"

    def exists_locally(self, app_id: int) -> bool:
        """Check if an image for app_id is cached. Content is not validated."""
        return self.get_local_image_path(app_id).is_file()

    def _write_image(self, app_id: int, content: bytes) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        target = self.get_local_image_path(app_id)
        partial = target.with_name(target.name + ".part")
        try:
            with open(partial, 'wb') as f:
                f.write(content)
            os.replace(partial, target)
        except Exception:
            partial.unlink(missing_ok=True)
            raise

    async def download(self, app_id: int, image_url: str) -> bool:
        """Download image_url into the cache slot for app_id.

        The response status is checked before the body is read. Any
        non-200 status (a missing artwork 404 is common) returns False
        without touching the cache.

        Args:
            app_id: Steam app ID used to name the file
            image_url: Remote image URL

        Returns:
            True if the image was written to the cache
        """
        if not image_url:
            return False

        try:
            session = await self._get_session()
            async with session.get(
                image_url,
                timeout=aiohttp.ClientTimeout(total=IMAGE_FETCH_TIMEOUT)
            ) as response:
                if response.status != 200:
                    logger.debug(f"[ImageCache] No image for {app_id}: HTTP {response.status}")
                    return False
                content = await response.read()

            if not content:
                logger.debug(f"[ImageCache] Empty image body for {app_id}")
                return False

            loop = asyncio.get_running_loop()
            write = loop.run_in_executor(None, self._write_image, app_id, content)
            try:
                await asyncio.shield(write)
            except asyncio.CancelledError:
                # The worker thread can't be stopped; the file must be in place before the task ends
                await asyncio.wait([write])
                raise
            logger.debug(f"[ImageCache] Cached image for {app_id} ({len(content)} bytes)")
            return True
        except asyncio.TimeoutError:
            logger.warning(f"[ImageCache] Image download timed out for {app_id} after {IMAGE_FETCH_TIMEOUT}s")
        except Exception as e:
            logger.error(f"[ImageCache] Error downloading image for {app_id}: {e}")

        return False

    def clear_all(self) -> int:
        """Delete every cached image.

        Files that can't be removed (e.g. still open elsewhere) are skipped.

        Returns:
            Number of files actually deleted
        """
        if not self.cache_dir.exists():
            return 0

        count = 0
        for file in self.cache_dir.glob(f"*{IMAGE_EXTENSION}"):
            if not file.is_file():
                continue
            try:
                file.unlink()
                count += 1
            except Exception as e:
                logger.warning(f"[ImageCache] Failed to delete {file}: {e}")

        logger.info(f"[ImageCache] Cleared {count} images from cache")
        return count
