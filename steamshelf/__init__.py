# Steamshelf: Steam library cache and sync core
# Local metadata and cover image caches, sync against the Steam Web API, and search.

__version__ = "0.1.0"
