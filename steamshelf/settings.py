"""Settings storage for the Steam Web API credentials.

The credentials are opaque strings; the only validation done here is
presence. They are stored in a small JSON settings file in the user data
directory and handed explicitly to whatever needs them.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

from steamshelf.utils.paths import SETTINGS_PATH

logger = logging.getLogger(__name__)


@dataclass
class SteamCredentials:
    """Steam Web API key plus the account (SteamID64) whose library is read"""
    api_key: str = ""
    steam_id: str = ""

    def is_complete(self) -> bool:
        return bool(self.api_key and self.api_key.strip()) and bool(self.steam_id and self.steam_id.strip())


def load_settings(settings_path: Optional[str] = None) -> SteamCredentials:
    """Load saved credentials from the settings file.

    Returns empty credentials when the file is missing or unreadable.
    """
    path = settings_path or SETTINGS_PATH
    try:
        if os.path.exists(path):
            with open(path, 'r') as f:
                settings = json.load(f)
            return SteamCredentials(
                api_key=settings.get('api_key', ''),
                steam_id=settings.get('steam_id', ''),
            )
    except Exception as e:
        logger.error(f"[Settings] Error loading settings: {e}")
    return SteamCredentials()


def save_settings(credentials: SteamCredentials, settings_path: Optional[str] = None) -> bool:
    """Save credentials to the settings file, keeping any other keys in it.

    Args:
        credentials: Values to store (surrounding whitespace is trimmed)
        settings_path: Optional override of the settings file location

    Returns:
        True on success
    """
    path = settings_path or SETTINGS_PATH
    try:
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)

        settings = {}
        if os.path.exists(path):
            try:
                with open(path, 'r') as f:
                    settings = json.load(f)
            except json.JSONDecodeError:
                logger.warning(f"[Settings] Replacing unreadable settings file {path}")
                settings = {}

        settings['api_key'] = credentials.api_key.strip()
        settings['steam_id'] = credentials.steam_id.strip()

        with open(path, 'w') as f:
            json.dump(settings, f, indent=2)

        logger.info(f"[Settings] Saved Steam credentials for account {settings['steam_id']}")
        return True
    except Exception as e:
        logger.error(f"[Settings] Error saving settings: {e}")
        return False
