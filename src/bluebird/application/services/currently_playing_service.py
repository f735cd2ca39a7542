"""Refresh the currently-playing cache for every user with a refresh token.

Two phases. First, one task per user fetches what they're playing and returns a
(TrackDetail | None, error | None) pair. Second, once every task has finished, the collected
map is written to the cache. No task touches the cache itself.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from bluebird.application.services.normalizer import (
    currently_playing_track_ids,
    track_detail_from_wire,
)
from bluebird.domain.entities import TrackDetail, UserProfile
from bluebird.domain.ports import INowPlayingCache, ISpotifyClient, IStorageGateway
from bluebird.infrastructure.observability import set_correlation_id

logger = logging.getLogger(__name__)


@dataclass
class CurrentlyPlayingReport:
    """Outcome of one refresh: what was cached per user, and who failed."""

    details: dict[str, TrackDetail | None] = field(default_factory=dict)
    failed: dict[str, BaseException] = field(default_factory=dict)
    skipped_without_token: list[str] = field(default_factory=list)

    @property
    def playing(self) -> list[str]:
        return [uid for uid, detail in self.details.items() if detail is not None]

    def summary(self) -> dict[str, int]:
        return {
            "users": len(self.details),
            "playing": len(self.playing),
            "failed": len(self.failed),
            "without_token": len(self.skipped_without_token),
        }


class CurrentlyPlayingService:
    """Fetch currently-playing tracks and mirror them into the cache."""

    def __init__(
        self,
        spotify_client: ISpotifyClient,
        storage: IStorageGateway,
        cache: INowPlayingCache,
    ) -> None:
        self._spotify = spotify_client
        self._storage = storage
        self._cache = cache

    async def refresh_all_users(self) -> CurrentlyPlayingReport:
        report = CurrentlyPlayingReport()
        profiles = await self._storage.list_syncable_users()

        eligible: list[UserProfile] = []
        for profile in profiles:
            if profile.is_syncable:
                eligible.append(profile)
            else:
                report.skipped_without_token.append(profile.id)
                logger.info(
                    "currently_playing.user.skipped_no_token",
                    extra={"user_id": profile.id},
                )

        tasks = [
            asyncio.create_task(
                self._fetch_for_user(profile),
                name=f"currently_playing:{profile.id}",
            )
            for profile in eligible
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        for profile, outcome in zip(eligible, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(
                    "currently_playing.user.crashed",
                    extra={"user_id": profile.id, "error_type": type(outcome).__name__},
                )
                outcome = (None, outcome)
            detail, error = outcome
            report.details[profile.id] = detail
            if error is not None:
                report.failed[profile.id] = error

        # Failed users are stored as None, which deletes their key.
        for user_id, detail in report.details.items():
            await self._cache.store(user_id, detail)

        logger.info("currently_playing.run.completed", extra=report.summary())
        return report

    async def _fetch_for_user(
        self, profile: UserProfile
    ) -> tuple[TrackDetail | None, BaseException | None]:
        set_correlation_id(f"user:{profile.id}")
        try:
            return await self.fetch_for_user(profile), None
        except Exception as e:
            logger.warning(
                "currently_playing.user.failed",
                extra={
                    "user_id": profile.id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            return None, e

    async def fetch_for_user(self, profile: UserProfile) -> TrackDetail | None:
        """Currently-playing track of one user with full metadata, or None if idle.

        Raises:
            SpotifyServiceError: Token refresh or API failures
        """
        access_token = await self._spotify.refresh_access_token(profile.refresh_token)
        current = await self._spotify.fetch_currently_playing(access_token)
        if current is None:
            return None

        track_ids = currently_playing_track_ids(current.item)
        if not track_ids:
            return None

        # The currently-playing item is a trimmed object; /v1/tracks has the album art and URL.
        tracks = await self._spotify.fetch_tracks_by_ids(access_token, track_ids)
        if not tracks:
            logger.info(
                "currently_playing.track_not_found",
                extra={"user_id": profile.id, "track_id": track_ids[0]},
            )
            return None

        return track_detail_from_wire(tracks[0], listened_at=current.timestamp)
