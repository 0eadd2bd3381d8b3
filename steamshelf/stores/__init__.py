# Library sources
from .base import Game, LibrarySource, DESCRIPTION_UNAVAILABLE
from .steam import SteamLibrarySource

__all__ = ['Game', 'LibrarySource', 'SteamLibrarySource', 'DESCRIPTION_UNAVAILABLE']
