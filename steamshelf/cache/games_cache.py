"""Games metadata cache.

Stores the whole library as one JSON list of game records. Saves replace the
file in one step (write to a temp file, then rename), so readers never see a
half-written cache. A missing or unreadable file loads as an empty library.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional

from steamshelf.stores.base import Game
from steamshelf.utils.paths import GAMES_CACHE_PATH

logger = logging.getLogger(__name__)


class GamesCache:
    """JSON file holding every game in the library."""

    def __init__(self, cache_path: Optional[str] = None):
        self.cache_path = Path(cache_path or GAMES_CACHE_PATH)

    def exists(self) -> bool:
        return self.cache_path.exists()

    def load(self) -> List[Game]:
        """Load the cached library. Returns [] when absent or corrupt."""
        try:
            if not self.cache_path.exists():
                return []
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, list):
                logger.warning(f"[GamesCache] Ignoring cache with unexpected type {type(data).__name__}")
                return []
            games = [Game.from_dict(entry) for entry in data]
            logger.info(f"[GamesCache] Loaded {len(games)} games from cache")
            return games
        except Exception as e:
            logger.error(f"[GamesCache] Error loading games cache: {e}")
            return []

    def save(self, games: Iterable[Game]) -> bool:
        """Write the whole library, replacing the previous file."""
        records = [game.to_dict() for game in games]
        tmp_path = None
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.cache_path.parent),
                prefix=f".{self.cache_path.name}.",
                suffix=".tmp",
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
            os.replace(tmp_path, self.cache_path)
            tmp_path = None
            logger.debug(f"[GamesCache] Saved {len(records)} games to cache")
            return True
        except Exception as e:
            logger.error(f"[GamesCache] Error saving games cache: {e}")
            return False
        finally:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError as e:
                    logger.debug(f"[GamesCache] Could not remove temp file {tmp_path}: {e}")

    def delete(self) -> bool:
        """Remove the cache file. Returns False only if it exists and can't be removed."""
        try:
            self.cache_path.unlink()
            logger.info(f"[GamesCache] Deleted {self.cache_path}")
        except FileNotFoundError:
            pass
        except Exception as e:
            logger.error(f"[GamesCache] Error deleting games cache: {e}")
            return False
        return True
