"""
Base LibrarySource class defining the interface for game library sources.

A source only fetches data: the owned games list and per-game descriptions.
Merging, caching and image resolution belong to the LibraryManager.
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from dataclasses import dataclass
import logging


logger = logging.getLogger(__name__)

DESCRIPTION_UNAVAILABLE = "Details currently unavailable."


@dataclass
class Game:
    """Represents a game in the library"""
    app_id: int                          # Steam app ID, unique within the library
    name: str
    playtime: str                        # Precomputed label, e.g. "10.5 hours"
    image_url: str                       # Primary artwork (library_600x900)
    icon_url: str = ""                   # Small fallback image, "" when unknown
    display_image: Optional[str] = None  # Reference currently shown (local path or URL)
    description: str = ""                # Fetched lazily, never re-fetched once set

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the on-disk field names."""
        return {
            'id': self.app_id,
            'name': self.name,
            'playtimeLabel': self.playtime,
            'primaryImageRef': self.image_url,
            'iconRef': self.icon_url,
            'displayRef': self.display_image,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Game':
        """Build a Game from its on-disk form. Raises KeyError/ValueError on bad records."""
        name = data['name']
        if not name:
            raise ValueError(f"Game {data.get('id')} has no name")
        return cls(
            app_id=int(data['id']),
            name=name,
            playtime=data.get('playtimeLabel') or '',
            image_url=data.get('primaryImageRef') or '',
            icon_url=data.get('iconRef') or '',
            display_image=data.get('displayRef'),
            description=data.get('description') or '',
        )


class LibrarySource(ABC):
    """
    Abstract base class for game library sources.

    Implementations convert every network or parse failure into a neutral
    result: an empty list for the library and DESCRIPTION_UNAVAILABLE for
    descriptions. Nothing is retried.
    """

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Return the source identifier (e.g., 'steam')"""
        pass

    @abstractmethod
    async def fetch_owned_games(self, credentials) -> List[Game]:
        """
        Get the account's owned games.

        Args:
            credentials: SteamCredentials with the API key and account id.

        Returns:
            List of Game objects. Empty when the fetch did not contribute
            anything, which is not the same as an empty library.
        """
        pass

    @abstractmethod
    async def fetch_description(self, app_id: int) -> str:
        """
        Get the short store description for a game.

        Returns:
            Display-ready text, or DESCRIPTION_UNAVAILABLE on any failure.
        """
        pass

    async def close(self) -> None:
        """Release network resources. Default implementation does nothing."""
        return None
