"""Typed gateway over the relational store.

Reads go through the ORM models; the write path is ONE stored-procedure call so that plays,
catalog rows, link rows and the watermark commit together or not at all. We never issue the
inserts as separate statements from here.
"""

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from bluebird.domain.entities import (
    BulkInsertResult,
    PlayCountsResult,
    UserProfile,
    datetime_to_millis,
)
from bluebird.domain.exceptions import DecodingError, TransactionFailedError
from bluebird.domain.ports import IStorageGateway
from bluebird.infrastructure.persistence.models import (
    ArtistModel,
    SpotifyProfileModel,
    TrackModel,
    ensure_utc_aware,
)
from bluebird.infrastructure.persistence.rpc import (
    BULK_WRITE_PROCEDURE,
    BulkInsertResponse,
    BulkWriteRequest,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

# Hey future me - named-argument notation (`=>`) so parameter ORDER in the live function doesn't
# matter, only names. The double CAST on timestamp/uuid is for asyncpg: it infers bind types from
# the statement and refuses a str for a timestamptz slot, so we bind text and let Postgres cast.
_BULK_WRITE_SQL = text(
    f"""
    SELECT {BULK_WRITE_PROCEDURE}(
        user_plays_data => CAST(:user_plays_data AS jsonb),
        unseen_tracks_data => CAST(:unseen_tracks_data AS jsonb),
        unseen_artists_data => CAST(:unseen_artists_data AS jsonb),
        unseen_albums_data => CAST(:unseen_albums_data AS jsonb),
        user_id => CAST(CAST(:user_id AS text) AS uuid),
        current_fetch_ts => CAST(CAST(:current_fetch_ts AS text) AS timestamptz)
    )
    """
)

_PLAY_COUNT_PROCEDURES = (
    "update_user_play_counts",
    "update_user_track_counts",
    "update_user_weekly_plays",
)


def _decode_procedure_body(raw: Any) -> BulkInsertResponse:
    """asyncpg hands jsonb back as str, other drivers as dict - accept both."""
    context = BULK_WRITE_PROCEDURE
    try:
        if isinstance(raw, (str, bytes)):
            return BulkInsertResponse.model_validate_json(raw)
        return BulkInsertResponse.model_validate(raw)
    except ValidationError as e:
        raise DecodingError(e, context) from e


class StorageGateway(IStorageGateway):
    """Relational-store gateway used by the sync orchestrator and the CLI commands."""

    def __init__(self, session_factory: SessionFactory) -> None:
        """
        Args:
            session_factory: Callable returning a transactional session scope
                (normally Database.session_scope)
        """
        self._session_factory = session_factory

    async def list_syncable_users(self) -> list[UserProfile]:
        """List every profile row. Filtering on refresh token is the caller's job."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(SpotifyProfileModel).order_by(SpotifyProfileModel.id)
            )
            rows = result.scalars().all()

        return [
            UserProfile(
                id=row.id,
                spotify_user_id=row.spotify_user_id,
                refresh_token=row.refresh_token,
                plays_last_fetched=(
                    datetime_to_millis(ensure_utc_aware(row.plays_last_fetched))
                    if row.plays_last_fetched is not None
                    else None
                ),
            )
            for row in rows
        ]

    async def get_watermark(self, user_id: str) -> int | None:
        """Get plays_last_fetched as epoch ms (truncated), None if never synced."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(SpotifyProfileModel.plays_last_fetched)
                .where(SpotifyProfileModel.id == user_id)
                .limit(1)
            )
            value = result.scalar_one_or_none()

        if value is None:
            return None
        return datetime_to_millis(ensure_utc_aware(value))

    async def get_existing_track_ids(self, candidate_ids: list[str]) -> set[str]:
        """Subset of candidate_ids already stored in `tracks`."""
        if not candidate_ids:
            return set()
        async with self._session_factory() as session:
            result = await session.execute(
                select(TrackModel.id).where(TrackModel.id.in_(candidate_ids))
            )
            return set(result.scalars().all())

    async def get_existing_artist_ids(self, candidate_ids: list[str]) -> set[str]:
        """Subset of candidate_ids already stored in `artists`."""
        if not candidate_ids:
            return set()
        async with self._session_factory() as session:
            result = await session.execute(
                select(ArtistModel.id).where(ArtistModel.id.in_(candidate_ids))
            )
            return set(result.scalars().all())

    # Listen up, this is THE write. The procedure runs in its own transaction on the server
    # and also sets plays_last_fetched = current_fetch_ts. If it answers status "error",
    # nothing was committed - we raise TransactionFailedError and the caller must NOT touch
    # the watermark, so the next run re-fetches the same window.
    async def bulk_write_plays(self, request: BulkWriteRequest) -> BulkInsertResult:
        """
        Insert plays + unseen tracks/artists/albums for one user in one call.

        Args:
            request: Typed payload for the procedure

        Returns:
            Insert counts reported by the procedure

        Raises:
            UnknownStorageError: If the payload can't be JSON-encoded (no call made)
            TransactionFailedError: If the procedure reports status "error"
            DecodingError: If the procedure's answer doesn't match the result schema
        """
        params = request.to_params()

        async with self._session_factory() as session:
            result = await session.execute(_BULK_WRITE_SQL, params)
            raw = result.scalar_one()

        response = _decode_procedure_body(raw)
        if response.status == "error":
            raise TransactionFailedError(
                response.error or f"rpc failed: {BULK_WRITE_PROCEDURE}"
            )

        insert_result = response.to_result()
        logger.info(
            "storage.bulk_write.completed",
            extra={
                "user_id": request.user_id,
                "artists_inserted": insert_result.artists_inserted,
                "albums_inserted": insert_result.albums_inserted,
                "tracks_inserted": insert_result.tracks_inserted,
                "links_inserted": insert_result.links_inserted,
                "plays_inserted": insert_result.plays_inserted,
            },
        )
        return insert_result

    async def touch_watermark_only(self, user_id: str, now: datetime) -> None:
        """Advance plays_last_fetched without inserting anything."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(SpotifyProfileModel)
                .where(SpotifyProfileModel.id == user_id)
                .values(plays_last_fetched=ensure_utc_aware(now))
            )
            updated = getattr(result, "rowcount", None)

        if updated == 0:
            logger.warning(
                "storage.watermark.no_profile_row", extra={"user_id": user_id}
            )

    # Yo, these three aggregate procedures are independent - each commits on its own, so a
    # failure in the weekly recompute doesn't roll back the play counts that already ran.
    async def recompute_play_counts(self) -> PlayCountsResult:
        """Run the aggregate play-count procedures and return their row counts."""
        counts: list[int] = []
        for procedure in _PLAY_COUNT_PROCEDURES:
            async with self._session_factory() as session:
                result = await session.execute(text(f"SELECT {procedure}()"))
                value = result.scalar_one()
            count = int(value) if value is not None else 0
            logger.info(
                "storage.play_counts.updated",
                extra={"procedure": procedure, "rows": count},
            )
            counts.append(count)

        return PlayCountsResult(
            artist_play_counts=counts[0],
            track_counts=counts[1],
            weekly_plays=counts[2],
        )
