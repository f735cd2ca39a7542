"""Shared fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from bluebird.config import SpotifySettings
from bluebird.domain.ports import ISpotifyClient, IStorageGateway


@pytest.fixture
def spotify_settings() -> SpotifySettings:
    """Spotify settings with fake credentials and the real hosts."""
    return SpotifySettings(client_id="test-client", client_secret="test-secret")


@pytest.fixture
def mock_spotify() -> AsyncMock:
    """Spotify port mock that refreshes to "access-token" and returns nothing."""
    client = AsyncMock(spec=ISpotifyClient)
    client.refresh_access_token = AsyncMock(return_value="access-token")
    client.fetch_recently_played = AsyncMock(return_value=[])
    client.fetch_tracks_by_ids = AsyncMock(return_value=[])
    client.fetch_artists_by_ids = AsyncMock(return_value=[])
    client.fetch_currently_playing = AsyncMock(return_value=None)
    return client


@pytest.fixture
def mock_storage() -> AsyncMock:
    """Storage port mock with an empty store."""
    storage = AsyncMock(spec=IStorageGateway)
    storage.list_syncable_users = AsyncMock(return_value=[])
    storage.get_watermark = AsyncMock(return_value=None)
    storage.get_existing_track_ids = AsyncMock(return_value=set())
    storage.get_existing_artist_ids = AsyncMock(return_value=set())
    storage.touch_watermark_only = AsyncMock(return_value=None)
    return storage


@pytest.fixture
def mock_session_factory() -> tuple[MagicMock, AsyncMock]:
    """Session factory returning one mocked AsyncSession as an async context manager."""
    session = AsyncMock()
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=None)
    return factory, session
