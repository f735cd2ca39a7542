"""Redis-backed currently-playing cache.

One string key per user, `user:{id}:currently_playing`, holding the sorted-key JSON of a
TrackDetail with a short expiry. A user with nothing playing has the key removed, so readers
never see a stale track for longer than one run.
"""

import json
import logging

import redis.asyncio as aioredis

from bluebird.config import RedisSettings
from bluebird.domain.entities import TrackDetail
from bluebird.domain.ports import INowPlayingCache

logger = logging.getLogger(__name__)

KEY_TEMPLATE = "user:{user_id}:currently_playing"


def now_playing_key(user_id: str) -> str:
    return KEY_TEMPLATE.format(user_id=user_id)


class RedisNowPlayingCache(INowPlayingCache):
    """INowPlayingCache on top of redis.asyncio."""

    def __init__(self, redis_client: aioredis.Redis, ttl_seconds: int = 300) -> None:
        self._redis = redis_client
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: RedisSettings) -> "RedisNowPlayingCache":
        client = aioredis.Redis(
            host=settings.host,
            port=settings.port,
            password=settings.password or None,
            ssl=settings.ssl,
            decode_responses=True,
        )
        return cls(client, ttl_seconds=settings.ttl_seconds)

    async def store(self, user_id: str, detail: TrackDetail | None) -> None:
        key = now_playing_key(user_id)
        if detail is None:
            await self._redis.delete(key)
            logger.debug("now_playing.cleared", extra={"user_id": user_id})
            return

        payload = json.dumps(detail.to_dict(), sort_keys=True)
        await self._redis.setex(key, self._ttl_seconds, payload)
        logger.debug(
            "now_playing.stored",
            extra={"user_id": user_id, "track_id": detail.track_id},
        )

    async def close(self) -> None:
        await self._redis.aclose()
