"""Cache adapters."""

from bluebird.infrastructure.cache.now_playing_cache import (
    RedisNowPlayingCache,
    now_playing_key,
)

__all__ = ["RedisNowPlayingCache", "now_playing_key"]
