"""
Tests for LibraryManager: sync/merge, images, fallback, descriptions, reset.
"""
import asyncio
import json
import logging
import threading
import time
from unittest.mock import AsyncMock, Mock

import pytest

from steamshelf.cache.games_cache import GamesCache
from steamshelf.cache.image_cache import ImageCache
from steamshelf.services.library_manager import LibraryManager
from steamshelf.settings import SteamCredentials
from steamshelf.stores.base import DESCRIPTION_UNAVAILABLE, Game
from steamshelf.utils.artwork import (
    PLACEHOLDER_IMAGE_URL,
    get_header_image_url,
    get_icon_url,
    get_primary_image_url,
)

CREDENTIALS = SteamCredentials(api_key="KEY", steam_id="76561197960287930")
JPEG = b"\xff\xd8\xff\xe0fake-jpeg-bytes"


def make_game(app_id, name=None, icon_hash=None):
    return Game(
        app_id=app_id,
        name=name or f"Game {app_id}",
        playtime="Not played",
        image_url=get_primary_image_url(app_id),
        icon_url=get_icon_url(app_id, icon_hash),
    )


@pytest.fixture
def mock_source():
    """Create a mock library source."""
    return Mock(
        source_name="steam",
        fetch_owned_games=AsyncMock(return_value=[]),
        fetch_description=AsyncMock(return_value="A game."),
        close=AsyncMock(),
    )


@pytest.fixture
def image_session(fake_session):
    # Unknown URLs answer 404
    return fake_session()


@pytest.fixture
def games_cache(tmp_path):
    real = GamesCache(str(tmp_path / "games_cache.json"))
    return Mock(wraps=real, cache_path=real.cache_path)


@pytest.fixture
def image_cache(tmp_path, image_session):
    return ImageCache(str(tmp_path / "ImageCache"), session=image_session)


@pytest.fixture
def manager(mock_source, games_cache, image_cache):
    return LibraryManager(
        source=mock_source,
        games_cache=games_cache,
        image_cache=image_cache,
    )


def test_manager_initialization(manager):
    assert len(manager) == 0
    assert manager.games == []
    assert manager.snapshot == ()
    assert manager.count_label() == "0 Games"


# ---- sync ----

@pytest.mark.asyncio
async def test_sync_merges_new_games(manager, mock_source, games_cache):
    mock_source.fetch_owned_games.return_value = [make_game(1), make_game(2), make_game(3)]
    await manager.sync(CREDENTIALS)
    await manager.wait_for_images()
    games_cache.save.reset_mock()

    mock_source.fetch_owned_games.return_value = [make_game(2), make_game(3), make_game(4)]
    result = await manager.sync(CREDENTIALS)
    await manager.wait_for_images()

    assert result == {'success': True, 'error': None, 'fetched_count': 3, 'added_count': 1}
    assert [g.app_id for g in manager.games] == [1, 2, 3, 4]
    # One save for the merge, one once the new image settles
    assert games_cache.save.call_count == 2
    assert [r['id'] for r in json.loads(games_cache.cache_path.read_text())] == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_sync_twice_is_idempotent(manager, mock_source, games_cache):
    mock_source.fetch_owned_games.side_effect = lambda creds: [make_game(1), make_game(2)]

    await manager.sync(CREDENTIALS)
    first = manager.games
    result = await manager.sync(CREDENTIALS)
    await manager.wait_for_images()

    assert result['added_count'] == 0
    assert len(manager) == 2
    assert len({g.app_id for g in manager.games}) == 2
    # Existing entries are kept, not replaced
    assert all(a is b for a, b in zip(first, manager.games))
    # The merge save plus the image batch save; the second sync writes nothing
    assert games_cache.save.call_count == 2


@pytest.mark.asyncio
async def test_sync_dedups_within_one_fetch(manager, mock_source):
    mock_source.fetch_owned_games.return_value = [make_game(7), make_game(7, name="Duplicate")]

    result = await manager.sync(CREDENTIALS)
    await manager.wait_for_images()

    assert result['added_count'] == 1
    assert manager.get_game(7).name == "Game 7"


@pytest.mark.asyncio
async def test_sync_without_credentials_is_explicit_error(manager, mock_source):
    result = await manager.sync(SteamCredentials(api_key="KEY", steam_id=""))

    assert result['success'] is False
    assert result['error'] == 'errors.missingCredentials'
    mock_source.fetch_owned_games.assert_not_awaited()

    result = await manager.sync(None)
    assert result['error'] == 'errors.missingCredentials'


@pytest.mark.asyncio
async def test_sync_with_empty_fetch_is_noop(manager, mock_source, games_cache):
    mock_source.fetch_owned_games.return_value = [make_game(1)]
    await manager.sync(CREDENTIALS)
    await manager.wait_for_images()
    games_cache.save.reset_mock()

    mock_source.fetch_owned_games.return_value = []
    result = await manager.sync(CREDENTIALS)

    assert result['success'] is True
    assert result['fetched_count'] == 0
    assert len(manager) == 1
    games_cache.save.assert_not_called()


@pytest.mark.asyncio
async def test_sync_prevents_concurrent_syncs(manager, mock_source):
    manager._is_syncing = True

    result = await manager.sync(CREDENTIALS)

    assert result['success'] is False
    assert result['error'] == 'errors.syncInProgress'
    mock_source.fetch_owned_games.assert_not_awaited()


@pytest.mark.asyncio
async def test_sync_refreshes_search_snapshot(manager, mock_source):
    mock_source.fetch_owned_games.return_value = [
        make_game(400, "Portal"), make_game(620, "Portal 2"), make_game(220, "Half-Life"),
    ]
    await manager.sync(CREDENTIALS)
    await manager.wait_for_images()

    matches = await manager.search("portal")

    assert matches == {400, 620}
    assert [g.name for g in manager.visible_games(matches)] == ["Portal", "Portal 2"]
    assert [g.name for g in manager.visible_games(None)] == ["Half-Life", "Portal", "Portal 2"]
    assert manager.count_label(matches) == "2 Games"


@pytest.mark.asyncio
async def test_sync_progress_is_tracked(manager, mock_source):
    mock_source.fetch_owned_games.return_value = [make_game(1), make_game(2)]

    await manager.sync(CREDENTIALS)
    await manager.wait_for_images()

    progress = manager.sync_progress.to_dict()
    assert progress['total_games'] == 2
    assert progress['added_games'] == 2
    assert progress['images_total'] == 2
    assert progress['images_resolved'] == 2
    assert progress['status'] == 'complete'
    assert progress['progress_percent'] == 100


# ---- images ----

@pytest.mark.asyncio
async def test_materialize_downloads_into_cache(manager, image_cache, image_session, fake_response):
    game = make_game(400)
    image_session.routes[game.image_url] = fake_response(200, body=JPEG)
    manager._games[game.app_id] = game

    resolved = await manager.materialize_image(game)

    assert resolved == str(image_cache.get_local_image_path(400))
    assert game.display_image == resolved
    assert image_cache.exists_locally(400)


@pytest.mark.asyncio
async def test_materialize_uses_existing_cache_file(manager, image_cache, image_session):
    game = make_game(400)
    manager._games[game.app_id] = game
    image_cache.cache_dir.mkdir(parents=True)
    image_cache.get_local_image_path(400).write_bytes(JPEG)

    resolved = await manager.materialize_image(game)

    assert resolved == str(image_cache.get_local_image_path(400))
    assert image_session.calls == []


@pytest.mark.asyncio
async def test_materialize_failure_shows_primary_url(manager, image_cache):
    game = make_game(400)
    manager._games[game.app_id] = game

    resolved = await manager.materialize_image(game)

    assert resolved == game.image_url
    assert game.display_image == game.image_url
    assert not image_cache.exists_locally(400)


@pytest.mark.asyncio
async def test_materialize_ignores_games_no_longer_in_library(manager, image_session, fake_response):
    game = make_game(400)
    image_session.routes[game.image_url] = fake_response(200, body=JPEG)

    assert await manager.materialize_image(game) is None
    assert game.display_image is None


@pytest.mark.asyncio
async def test_reset_during_download_drops_result(manager, mock_source, image_cache):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_download(app_id, url):
        started.set()
        await release.wait()
        return True

    image_cache.download = slow_download
    game = make_game(400)
    mock_source.fetch_owned_games.return_value = [game]

    await manager.sync(CREDENTIALS)
    await started.wait()
    await manager.reset_all()
    release.set()
    await manager.wait_for_images()

    assert len(manager) == 0
    assert game.display_image is None


@pytest.mark.asyncio
async def test_reset_during_file_write_leaves_no_image(manager, mock_source, games_cache, image_cache, image_session, fake_response):
    write_started = threading.Event()
    real_write = image_cache._write_image

    def slow_write(app_id, content):
        write_started.set()
        time.sleep(0.3)
        real_write(app_id, content)

    image_cache._write_image = slow_write
    game = make_game(400)
    image_session.routes[game.image_url] = fake_response(200, body=JPEG)
    mock_source.fetch_owned_games.return_value = [game]

    await manager.sync(CREDENTIALS)
    while not write_started.is_set():
        await asyncio.sleep(0.01)
    await manager.reset_all()

    assert not image_cache.exists_locally(400)
    await asyncio.sleep(0.5)
    assert not image_cache.exists_locally(400)
    assert not games_cache.cache_path.exists()
    assert len(manager) == 0


@pytest.mark.asyncio
async def test_resolved_images_are_persisted(manager, mock_source, games_cache, image_cache, image_session, fake_response):
    cached, missing = make_game(400), make_game(620)
    image_session.routes[cached.image_url] = fake_response(200, body=JPEG)
    mock_source.fetch_owned_games.return_value = [cached, missing]

    await manager.sync(CREDENTIALS)
    await manager.wait_for_images()

    records = {r['id']: r for r in json.loads(games_cache.cache_path.read_text())}
    assert records[400]['displayRef'] == str(image_cache.get_local_image_path(400))
    assert records[620]['displayRef'] == get_primary_image_url(620)



# ---- fallback ----

@pytest.mark.asyncio
async def test_display_failure_walks_chain_and_persists(manager, games_cache):
    game = make_game(400, icon_hash="cfa928ab")
    game.display_image = game.image_url
    manager._games[game.app_id] = game

    steps = [await manager.handle_display_failure(game) for _ in range(3)]

    assert steps == [get_header_image_url(400), game.icon_url, PLACEHOLDER_IMAGE_URL]
    assert games_cache.save.call_count == 3

    records = json.loads(games_cache.cache_path.read_text())
    assert records[0]['displayRef'] == PLACEHOLDER_IMAGE_URL


@pytest.mark.asyncio
async def test_display_failure_converges_to_placeholder(manager, games_cache):
    game = make_game(620)
    game.display_image = game.image_url
    manager._games[game.app_id] = game

    assert await manager.handle_display_failure(game) == get_header_image_url(620)
    assert await manager.handle_display_failure(game) == PLACEHOLDER_IMAGE_URL
    assert await manager.handle_display_failure(game) == PLACEHOLDER_IMAGE_URL
    assert await manager.handle_display_failure(game) == PLACEHOLDER_IMAGE_URL
    assert game.display_image == PLACEHOLDER_IMAGE_URL
    assert games_cache.save.call_count == 2


@pytest.mark.asyncio
async def test_display_failure_of_cached_file_moves_to_header(manager, image_cache):
    game = make_game(400)
    game.display_image = str(image_cache.get_local_image_path(400))
    manager._games[game.app_id] = game

    assert await manager.handle_display_failure(game) == get_header_image_url(400)


# ---- descriptions ----

@pytest.mark.asyncio
async def test_ensure_description_fetches_once(manager, mock_source):
    game = make_game(400)
    manager._games[game.app_id] = game

    assert await manager.ensure_description(game) == "A game."
    assert await manager.ensure_description(game) == "A game."
    mock_source.fetch_description.assert_awaited_once_with(400)


@pytest.mark.asyncio
async def test_ensure_description_keeps_placeholder(manager, mock_source):
    game = make_game(400)
    manager._games[game.app_id] = game
    mock_source.fetch_description.return_value = DESCRIPTION_UNAVAILABLE

    assert await manager.ensure_description(game) == DESCRIPTION_UNAVAILABLE
    assert await manager.ensure_description(game) == DESCRIPTION_UNAVAILABLE
    mock_source.fetch_description.assert_awaited_once()


@pytest.mark.asyncio
async def test_ensure_description_source_exception(manager, mock_source):
    game = make_game(400)
    manager._games[game.app_id] = game
    mock_source.fetch_description.side_effect = Exception("API Error")

    assert await manager.ensure_description(game) == DESCRIPTION_UNAVAILABLE
    assert game.description == DESCRIPTION_UNAVAILABLE


# ---- load ----

@pytest.mark.asyncio
async def test_load_keeps_advanced_fallback(manager, games_cache, image_session):
    advanced = make_game(400)
    advanced.display_image = get_header_image_url(400)
    fresh = make_game(620)
    games_cache.save([advanced, fresh])

    assert await manager.load() == 2
    await manager.wait_for_images()

    assert manager.get_game(400).display_image == get_header_image_url(400)
    assert manager.get_game(620).display_image == get_primary_image_url(620)
    assert [url for url, _ in image_session.calls] == [get_primary_image_url(620)]
    assert await manager.search("game") == {400, 620}


@pytest.mark.asyncio
async def test_load_without_materialize(manager, games_cache, image_session):
    games_cache.save([make_game(1)])

    await manager.load(materialize=False)

    assert len(manager) == 1
    assert image_session.calls == []


# ---- reset ----

@pytest.mark.asyncio
async def test_reset_all_clears_everything(manager, mock_source, games_cache, image_cache, image_session, fake_response):
    games = [make_game(1), make_game(2), make_game(3)]
    for game in games[:2]:
        image_session.routes[game.image_url] = fake_response(200, body=JPEG)
    mock_source.fetch_owned_games.return_value = games

    await manager.sync(CREDENTIALS)
    await manager.wait_for_images()
    assert image_cache.exists_locally(1) and image_cache.exists_locally(2)
    assert games_cache.cache_path.exists()

    result = await manager.reset_all()

    assert result['success'] is True
    assert result['deleted_images'] == 2
    assert result['removed_games'] == 3
    assert len(manager) == 0
    assert manager.snapshot == ()
    assert not games_cache.cache_path.exists()
    assert not any(image_cache.exists_locally(g.app_id) for g in games)


@pytest.mark.asyncio
async def test_reset_all_on_empty_library(manager):
    result = await manager.reset_all()
    assert result['deleted_images'] == 0
    assert result['removed_games'] == 0


@pytest.mark.asyncio
async def test_log_lines_are_tagged(manager, mock_source, caplog):
    caplog.set_level(logging.DEBUG, logger="steamshelf.services.library_manager")
    mock_source.fetch_owned_games.return_value = [make_game(1)]

    await manager.sync(CREDENTIALS)
    await manager.wait_for_images()
    await manager.reset_all()

    messages = [r.getMessage() for r in caplog.records if r.name == "steamshelf.services.library_manager"]
    assert "[Sync] Fetching owned games from steam..." in messages
    assert messages
    assert all(m.startswith(("[Sync]", "[Library]")) for m in messages)


# ---- notifications ----

@pytest.mark.asyncio
async def test_subscribers_receive_change_events(manager, mock_source):
    events = []
    manager.subscribe(lambda app_id, field: events.append((app_id, field)))
    manager.subscribe(Mock(side_effect=Exception("listener bug")))
    mock_source.fetch_owned_games.return_value = [make_game(1)]

    await manager.sync(CREDENTIALS)
    await manager.wait_for_images()
    await manager.ensure_description(manager.get_game(1))

    assert events == [(1, 'added'), (1, 'display_image'), (1, 'description')]


def test_unsubscribe(manager):
    events = []
    unsubscribe = manager.subscribe(lambda app_id, field: events.append(field))
    unsubscribe()
    manager._notify(1, 'added')
    assert events == []


@pytest.mark.asyncio
async def test_close_releases_resources(manager, mock_source):
    await manager.close()
    mock_source.close.assert_awaited_once()
