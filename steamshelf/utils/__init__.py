# Utils package
from .paths import (
    get_data_dir,
    STEAMSHELF_DATA_DIR,
    GAMES_CACHE_PATH,
    IMAGE_CACHE_DIR,
    SETTINGS_PATH,
)

__all__ = [
    'get_data_dir',
    'STEAMSHELF_DATA_DIR',
    'GAMES_CACHE_PATH',
    'IMAGE_CACHE_DIR',
    'SETTINGS_PATH',
]
