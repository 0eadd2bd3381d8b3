"""Steam Web API library source.

Reads the owned games list from IPlayerService/GetOwnedGames and short
descriptions from the store appdetails endpoint.
"""
import asyncio
import logging
import ssl
from typing import Any, Dict, List, Optional

import aiohttp
import certifi

from .base import Game, LibrarySource, DESCRIPTION_UNAVAILABLE
from steamshelf.utils.artwork import get_icon_url, get_primary_image_url
from steamshelf.utils.metadata import format_playtime, sanitize_description

logger = logging.getLogger(__name__)

OWNED_GAMES_URL = "https://api.steampowered.com/IPlayerService/GetOwnedGames/v1/"
APP_DETAILS_URL = "https://store.steampowered.com/api/appdetails"

REQUEST_TIMEOUT = 15  # seconds


def parse_owned_games(data: Any) -> List[Game]:
    """Build Game objects from a GetOwnedGames response body.

    Entries without an appid or name are skipped. A body without
    response.games yields an empty list.
    """
    if not isinstance(data, dict):
        return []
    response = data.get('response')
    if not isinstance(response, dict):
        return []
    entries = response.get('games')
    if not isinstance(entries, list):
        return []

    games = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        app_id = entry.get('appid')
        name = entry.get('name')
        if app_id is None or not name:
            logger.debug(f"[Steam] Skipping incomplete library entry: {entry}")
            continue

        app_id = int(app_id)
        games.append(Game(
            app_id=app_id,
            name=name,
            playtime=format_playtime(entry.get('playtime_forever', 0)),
            image_url=get_primary_image_url(app_id),
            icon_url=get_icon_url(app_id, entry.get('img_icon_url')),
            display_image=None,
        ))
    return games


def parse_app_description(data: Any, app_id: int) -> Optional[str]:
    """Extract the short description from an appdetails response, or None."""
    if not isinstance(data, dict):
        return None
    root = data.get(str(app_id))
    if not isinstance(root, dict) or not root.get('success'):
        return None
    details = root.get('data')
    if not isinstance(details, dict):
        return None
    raw = details.get('short_description')
    if raw is None:
        return None
    return sanitize_description(raw)


class SteamLibrarySource(LibrarySource):
    """Fetches the owned library and store descriptions from Steam."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout: float = REQUEST_TIMEOUT):
        """Initialize with an optional shared session.

        Args:
            session: aiohttp session to use; one is created lazily when omitted
            timeout: Total timeout per request, in seconds
        """
        self.session = session
        self.timeout = timeout
        self._owns_session = session is None

    @property
    def source_name(self) -> str:
        return "steam"

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

    async def fetch_owned_games(self, credentials) -> List[Game]:
        params = {
            'key': credentials.api_key,
            'steamid': credentials.steam_id,
            'include_appinfo': 'true',
            'include_played_free_games': 'true',
            'format': 'json',
        }
        try:
            session = await self._get_session()
            async with session.get(
                OWNED_GAMES_URL,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    logger.warning(f"[Steam] GetOwnedGames returned status {response.status}")
                    return []
                data = await response.json(content_type=None)
        except asyncio.TimeoutError:
            logger.warning(f"[Steam] GetOwnedGames timed out after {self.timeout}s")
            return []
        except Exception as e:
            logger.error(f"[Steam] Error fetching owned games: {e}")
            return []

        try:
            games = parse_owned_games(data)
        except Exception as e:
            logger.error(f"[Steam] Malformed GetOwnedGames response: {e}")
            return []

        logger.info(f"[Steam] Fetched {len(games)} owned games")
        return games

    async def fetch_description(self, app_id: int) -> str:
        try:
            session = await self._get_session()
            async with session.get(
                APP_DETAILS_URL,
                params={'appids': str(app_id)},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    logger.debug(f"[Steam] appdetails returned status {response.status} for {app_id}")
                    return DESCRIPTION_UNAVAILABLE
                data = await response.json(content_type=None)

            description = parse_app_description(data, app_id)
        except Exception as e:
            logger.debug(f"[Steam] Failed to fetch description for {app_id}: {e}")
            return DESCRIPTION_UNAVAILABLE

        if description is None:
            return DESCRIPTION_UNAVAILABLE
        return description
