"""Per-user play-history synchronization and the fan-out across users.

Hey future me - this is the heart of the job. Per user it's a strict sequence:

    START -> TOKEN_REFRESHED -> DELTA_FETCHED -> METADATA_RESOLVED -> WRITTEN -> DONE
                         \\_______________ any failure ________________/-> ERROR

One asyncio task per user with a refresh token; each task RETURNS its own UserSyncResult
(it never writes into a shared dict), and the results are folded into one report after
gather(). A failing user is logged and skipped - it can never abort the others.

The watermark moves in exactly two places:
- inside the bulk-write procedure (current_fetch_ts), atomically with the inserts
- touch_watermark_only() when Spotify returned zero plays
If the bulk write fails, the watermark stays put and the next run re-reads the same window.
"""

import asyncio
import logging
import time
from datetime import UTC, datetime

from bluebird.application.services.normalizer import (
    artist_from_wire,
    dedup_albums,
    dedup_artist_records,
    dedup_artists,
    dedup_tracks,
    to_play_rows,
    track_from_wire,
    unique_track_ids,
)
from bluebird.domain.entities import (
    Album,
    Artist,
    BulkInsertResult,
    SyncRunReport,
    SyncState,
    Track,
    UserProfile,
    UserSyncResult,
)
from bluebird.domain.ports import ISpotifyClient, IStorageGateway
from bluebird.infrastructure.observability import set_correlation_id
from bluebird.infrastructure.persistence.rpc import BulkWriteRequest

logger = logging.getLogger(__name__)


class PlaySyncService:
    """Sync orchestrator: runs the per-user pipeline for every syncable user."""

    # Yo, both knobs default to None = the classic behaviour: one task per user, all started at
    # once, no deadline. max_concurrency bounds in-flight users with a semaphore; the deadline
    # only stops users that haven't STARTED yet - a started pipeline always runs to the end,
    # so a bulk write is never cut off mid-flight.
    def __init__(
        self,
        spotify_client: ISpotifyClient,
        storage: IStorageGateway,
        max_concurrency: int | None = None,
        deadline_seconds: float | None = None,
    ) -> None:
        self._spotify = spotify_client
        self._storage = storage
        self._max_concurrency = max_concurrency
        self._deadline_seconds = deadline_seconds

    # =========================================================================
    # Fan-out
    # =========================================================================

    async def sync_all_users(self) -> SyncRunReport:
        """Run one sync pass over every user.

        Returns:
            SyncRunReport keyed by user id

        Raises:
            Exception: Whatever list_syncable_users raises - without a user list there is
                nothing to fan out over, so this one IS fatal for the run.
        """
        report = SyncRunReport(started_at=datetime.now(UTC))
        profiles = await self._storage.list_syncable_users()

        eligible: list[UserProfile] = []
        for profile in profiles:
            if profile.is_syncable:
                eligible.append(profile)
            else:
                report.skipped_without_token.append(profile.id)
                logger.info(
                    "play_sync.user.skipped_no_token", extra={"user_id": profile.id}
                )

        logger.info(
            "play_sync.run.started",
            extra={"users": len(eligible), "without_token": len(report.skipped_without_token)},
        )

        semaphore = (
            asyncio.Semaphore(self._max_concurrency) if self._max_concurrency else None
        )
        deadline = (
            time.monotonic() + self._deadline_seconds
            if self._deadline_seconds is not None
            else None
        )

        tasks = [
            asyncio.create_task(
                self._run_user(profile, semaphore, deadline),
                name=f"play_sync:{profile.id}",
            )
            for profile in eligible
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        # Single-threaded aggregation - no lock needed on the results map.
        for profile, outcome in zip(eligible, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                # _run_user catches Exception itself; this only sees things like cancellation
                logger.error(
                    "play_sync.user.crashed",
                    extra={"user_id": profile.id, "error_type": type(outcome).__name__},
                )
                outcome = UserSyncResult(
                    user_id=profile.id, state=SyncState.ERROR, error=outcome
                )
            report.results[profile.id] = outcome

        report.finished_at = datetime.now(UTC)
        logger.info("play_sync.run.completed", extra=report.summary())
        return report

    async def _run_user(
        self,
        profile: UserProfile,
        semaphore: asyncio.Semaphore | None,
        deadline: float | None,
    ) -> UserSyncResult:
        if semaphore is None:
            return await self._start_if_in_time(profile, deadline)
        async with semaphore:
            return await self._start_if_in_time(profile, deadline)

    async def _start_if_in_time(
        self, profile: UserProfile, deadline: float | None
    ) -> UserSyncResult:
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning(
                "play_sync.user.deadline_skipped", extra={"user_id": profile.id}
            )
            return UserSyncResult(user_id=profile.id, state=SyncState.SKIPPED)
        return await self.sync_user(profile)

    # =========================================================================
    # Per-user pipeline
    # =========================================================================

    async def sync_user(self, profile: UserProfile) -> UserSyncResult:
        """Run the full pipeline for one user, never raising.

        Each task runs in its own contextvars copy, so the correlation id set here tags every
        log line of this user's pipeline without leaking into the others.
        """
        set_correlation_id(f"user:{profile.id}")
        result = UserSyncResult(user_id=profile.id)
        try:
            await self._pipeline(profile, result)
        except Exception as e:
            result.failed_in = result.state
            result.state = SyncState.ERROR
            result.error = e
            logger.warning(
                "play_sync.user.failed",
                extra={
                    "user_id": profile.id,
                    "failed_in": result.failed_in.value,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
        return result

    async def _pipeline(self, profile: UserProfile, result: UserSyncResult) -> None:
        now = datetime.now(UTC)

        # START -> TOKEN_REFRESHED
        access_token = await self._spotify.refresh_access_token(profile.refresh_token)
        result.state = SyncState.TOKEN_REFRESHED

        # TOKEN_REFRESHED -> DELTA_FETCHED
        watermark = await self._storage.get_watermark(profile.id) or 0
        items = await self._spotify.fetch_recently_played(access_token, watermark)
        result.plays_fetched = len(items)
        result.state = SyncState.DELTA_FETCHED

        if not items:
            # Empty window: advance the watermark anyway so we don't rescan it forever.
            await self._storage.touch_watermark_only(profile.id, now)
            result.watermark_only = True
            result.insert_result = BulkInsertResult.empty()
            result.state = SyncState.WRITTEN
            result.state = SyncState.DONE
            logger.info(
                "play_sync.user.no_new_plays",
                extra={"user_id": profile.id, "after_ms": watermark},
            )
            return

        # DELTA_FETCHED -> METADATA_RESOLVED
        plays = to_play_rows(items, profile.id)
        candidate_ids = unique_track_ids(items)
        existing_ids = await self._storage.get_existing_track_ids(candidate_ids)
        unseen_ids = [tid for tid in candidate_ids if tid not in existing_ids]

        tracks: list[Track] = []
        albums: list[Album] = []
        artists: list[Artist] = []
        if unseen_ids:
            wire_tracks = await self._spotify.fetch_tracks_by_ids(access_token, unseen_ids)
            tracks = dedup_tracks(track_from_wire(t) for t in wire_tracks)
            albums = dedup_albums(tracks)
            artists = await self._resolve_unseen_artists(
                access_token, [a.id for a in dedup_artists(tracks, albums)]
            )

        result.unseen_tracks = len(tracks)
        result.unseen_albums = len(albums)
        result.unseen_artists = len(artists)
        result.state = SyncState.METADATA_RESOLVED

        # METADATA_RESOLVED -> WRITTEN
        request = BulkWriteRequest.build(
            user_id=profile.id,
            current_fetch_ts=now,
            plays=plays,
            tracks=tracks,
            artists=artists,
            albums=albums,
        )
        result.insert_result = await self._storage.bulk_write_plays(request)
        result.state = SyncState.WRITTEN

        # WRITTEN -> DONE (watermark moved inside the procedure)
        result.state = SyncState.DONE

    # Hey future me - artists embedded in track/album objects are the SIMPLIFIED kind (no images,
    # no genres). We drop ids the store already has, then fetch the full objects for the rest.
    async def _resolve_unseen_artists(
        self, access_token: str, artist_ids: list[str]
    ) -> list[Artist]:
        if not artist_ids:
            return []
        existing = await self._storage.get_existing_artist_ids(artist_ids)
        unseen = [aid for aid in artist_ids if aid not in existing]
        if not unseen:
            return []
        wire_artists = await self._spotify.fetch_artists_by_ids(access_token, unseen)
        return dedup_artist_records(artist_from_wire(a) for a in wire_artists)
