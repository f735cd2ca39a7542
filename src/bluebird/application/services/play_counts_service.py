"""Recompute the aggregate play-count tables."""

import logging

from bluebird.domain.entities import PlayCountsResult
from bluebird.domain.ports import IStorageGateway
from bluebird.infrastructure.observability import log_operation

logger = logging.getLogger(__name__)


class PlayCountsService:
    """Thin wrapper so the CLI and scheduler don't talk to the gateway directly."""

    def __init__(self, storage: IStorageGateway) -> None:
        self._storage = storage

    async def recompute(self) -> PlayCountsResult:
        async with log_operation(logger, "play_counts.recompute"):
            result = await self._storage.recompute_play_counts()

        logger.info(
            "play_counts.recompute.summary",
            extra={
                "artist_play_counts": result.artist_play_counts,
                "track_counts": result.track_counts,
                "weekly_plays": result.weekly_plays,
            },
        )
        return result
