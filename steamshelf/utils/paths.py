"""Steamshelf file path constants and utilities."""

import os
from pathlib import Path


# Steamshelf data directory (STEAMSHELF_DATA_DIR overrides the default location)
STEAMSHELF_DATA_DIR = os.environ.get(
    "STEAMSHELF_DATA_DIR",
    os.path.expanduser("~/.local/share/steamshelf"),
)

# Cache and data files
GAMES_CACHE_FILE = "games_cache.json"
IMAGE_CACHE_DIRNAME = "ImageCache"
SETTINGS_FILE = "settings.json"

GAMES_CACHE_PATH = os.path.join(STEAMSHELF_DATA_DIR, GAMES_CACHE_FILE)
IMAGE_CACHE_DIR = os.path.join(STEAMSHELF_DATA_DIR, IMAGE_CACHE_DIRNAME)
SETTINGS_PATH = os.path.join(STEAMSHELF_DATA_DIR, SETTINGS_FILE)


def get_data_dir(base_dir: str = None) -> Path:
    """Get the data directory, honouring an explicit override.

    Args:
        base_dir: Optional directory to use instead of the default

    Returns:
        Path to the data directory (not created)
    """
    return Path(base_dir) if base_dir else Path(STEAMSHELF_DATA_DIR)

