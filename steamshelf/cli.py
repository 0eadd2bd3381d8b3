"""Command line driver for the steamshelf library core.

Usage:
    steamshelf config --api-key KEY --steam-id ID
    steamshelf sync
    steamshelf list [--query TEXT]
    steamshelf search TEXT
    steamshelf describe APP_ID
    steamshelf fallback APP_ID
    steamshelf reset --yes
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from steamshelf.cache import GamesCache, ImageCache
from steamshelf.services import LibraryManager
from steamshelf.settings import SteamCredentials, load_settings, save_settings
from steamshelf.stores import SteamLibrarySource
from steamshelf.utils.paths import (
    GAMES_CACHE_FILE,
    IMAGE_CACHE_DIRNAME,
    SETTINGS_FILE,
    get_data_dir,
)

logger = logging.getLogger("steamshelf")


def build_manager(data_dir: Optional[str] = None) -> LibraryManager:
    """Wire a LibraryManager to the caches under data_dir."""
    base = get_data_dir(data_dir)
    return LibraryManager(
        source=SteamLibrarySource(),
        games_cache=GamesCache(str(base / GAMES_CACHE_FILE)),
        image_cache=ImageCache(str(base / IMAGE_CACHE_DIRNAME)),
    )


def _settings_path(data_dir: Optional[str]) -> str:
    return str(get_data_dir(data_dir) / SETTINGS_FILE)


def _print_games(manager: LibraryManager, matches=None) -> None:
    for game in manager.visible_games(matches):
        print(f"{game.app_id:>10}  {game.name}  ({game.playtime})")
    print(manager.count_label(matches))


async def _run(args) -> int:
    if args.command == "config":
        current = load_settings(_settings_path(args.data_dir))
        credentials = SteamCredentials(
            api_key=args.api_key if args.api_key is not None else current.api_key,
            steam_id=args.steam_id if args.steam_id is not None else current.steam_id,
        )
        return 0 if save_settings(credentials, _settings_path(args.data_dir)) else 1

    manager = build_manager(args.data_dir)
    try:
        await manager.load(materialize=args.command == "sync")

        if args.command == "sync":
            credentials = load_settings(_settings_path(args.data_dir))
            result = await manager.sync(credentials)
            if result['error'] == 'errors.missingCredentials':
                print("Please set your Steam API Key and Steam ID first: steamshelf config --api-key KEY --steam-id ID")
                return 2
            if not result['success']:
                logger.error(f"Sync failed: {result['error']}")
                return 1
            await manager.wait_for_images()
            print(f"Fetched {result['fetched_count']} games, {result['added_count']} new")
            print(manager.count_label())
            return 0

        if args.command in ("list", "search"):
            matches = await manager.search(args.query)
            _print_games(manager, matches)
            return 0

        if args.command == "describe":
            game = manager.get_game(args.app_id)
            if game is None:
                logger.error(f"App {args.app_id} is not in the library")
                return 1
            had_description = bool(game.description)
            description = await manager.ensure_description(game)
            if not had_description:
                await manager.save()
            print(f"{game.name}\n\n{description}")
            return 0

        if args.command == "fallback":
            game = manager.get_game(args.app_id)
            if game is None:
                logger.error(f"App {args.app_id} is not in the library")
                return 1
            print(await manager.handle_display_failure(game))
            return 0

        if args.command == "reset":
            if not args.yes:
                print("This will delete all cached images and your game list. Re-run with --yes to continue.")
                return 1
            result = await manager.reset_all()
            print(f"Cache cleared! Deleted {result['deleted_images']} images and game metadata.")
            return 0

        return 1
    finally:
        await manager.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="steamshelf", description="Steam library cache and sync")
    parser.add_argument("--data-dir", default=None,
                       help="Directory for the games cache, image cache and settings")
    parser.add_argument("-v", "--verbose", action="store_true",
                       help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    config = subparsers.add_parser("config", help="Save Steam API credentials")
    config.add_argument("--api-key", default=None, help="Steam Web API key")
    config.add_argument("--steam-id", default=None, help="SteamID64 of the account")

    subparsers.add_parser("sync", help="Fetch owned games and cache their artwork")

    list_parser = subparsers.add_parser("list", help="List the cached library by name")
    list_parser.add_argument("--query", default="", help="Only show names containing this text")

    search = subparsers.add_parser("search", help="Search the cached library by name")
    search.add_argument("query")

    describe = subparsers.add_parser("describe", help="Show a game's store description")
    describe.add_argument("app_id", type=int)

    fallback = subparsers.add_parser("fallback", help="Mark a game's image as broken and try the next one")
    fallback.add_argument("app_id", type=int)

    reset = subparsers.add_parser("reset", help="Delete all cached images and the game list")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
