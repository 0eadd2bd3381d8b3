"""Local caches: library metadata and cover images."""

from .games_cache import GamesCache
from .image_cache import ImageCache

__all__ = [
    "GamesCache",
    "ImageCache",
]
