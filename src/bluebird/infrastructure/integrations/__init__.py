"""External service integrations."""

from bluebird.infrastructure.integrations.spotify_client import SpotifyClient

__all__ = ["SpotifyClient"]
