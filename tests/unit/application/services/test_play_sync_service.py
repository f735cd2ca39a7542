"""Tests for the play sync orchestrator."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from factories import make_artist, make_played_item, make_track

from bluebird.application.services.play_sync_service import PlaySyncService
from bluebird.domain.entities import BulkInsertResult, SyncState, UserProfile
from bluebird.domain.exceptions import (
    NetworkError,
    TransactionFailedError,
    UnexpectedResponseCodeError,
)
from bluebird.infrastructure.persistence.rpc import BulkWriteRequest

# Hey future me - these tests pin down the per-user state machine and the fan-out:
# 1. only unseen tracks/artists are fetched
# 2. one failing user never affects the others
# 3. the watermark moves only via the procedure or the empty-delta touch


def profile(user_id: str, token: str | None = "refresh") -> UserProfile:
    return UserProfile(id=user_id, refresh_token=token)


def ok_result(**counts: int) -> BulkInsertResult:
    return BulkInsertResult(status="ok", **counts)


@pytest.fixture
def service(mock_spotify: AsyncMock, mock_storage: AsyncMock) -> PlaySyncService:
    return PlaySyncService(mock_spotify, mock_storage)


class TestSyncUser:
    """Test the per-user pipeline."""

    async def test_only_unseen_tracks_fetched(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """Delta {A, B, C} with A known -> /v1/tracks gets exactly [B, C]."""
        mock_spotify.fetch_recently_played.return_value = [
            make_played_item("A", "2024-01-01T10:00:00Z"),
            make_played_item("B", "2024-01-01T09:00:00Z"),
            make_played_item("C", "2024-01-01T08:00:00Z"),
        ]
        mock_storage.get_existing_track_ids.return_value = {"A"}
        mock_spotify.fetch_tracks_by_ids.return_value = [make_track("B"), make_track("C")]
        mock_storage.bulk_write_plays.return_value = ok_result(tracks_inserted=2)

        result = await service.sync_user(profile("u1"))

        assert result.state == SyncState.DONE
        mock_storage.get_existing_track_ids.assert_awaited_once_with(["A", "B", "C"])
        mock_spotify.fetch_tracks_by_ids.assert_awaited_once_with(
            "access-token", ["B", "C"]
        )
        request: BulkWriteRequest = mock_storage.bulk_write_plays.await_args.args[0]
        assert [p.track_id for p in request.plays] == ["A", "B", "C"]
        assert [t.id for t in request.tracks] == ["B", "C"]

    async def test_all_tracks_known_skips_metadata_fetch(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """Known tracks still produce play rows, but no catalog lookups."""
        mock_spotify.fetch_recently_played.return_value = [
            make_played_item("A", "2024-01-01T10:00:00Z")
        ]
        mock_storage.get_existing_track_ids.return_value = {"A"}
        mock_storage.bulk_write_plays.return_value = ok_result(plays_inserted=1)

        result = await service.sync_user(profile("u1"))

        assert result.state == SyncState.DONE
        mock_spotify.fetch_tracks_by_ids.assert_not_awaited()
        mock_spotify.fetch_artists_by_ids.assert_not_awaited()
        request: BulkWriteRequest = mock_storage.bulk_write_plays.await_args.args[0]
        assert len(request.plays) == 1
        assert request.tracks == []
        assert request.artists == []
        assert request.albums == []

    async def test_two_new_plays_end_to_end(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """Two plays of two new tracks on one album by one artist."""
        mock_storage.get_watermark.return_value = 1704067200000
        mock_spotify.fetch_recently_played.return_value = [
            make_played_item("t1", "2024-01-01T10:00:00Z", artist_ids=("a1",)),
            make_played_item("t2", "2024-01-01T09:00:00Z", artist_ids=("a1",)),
        ]
        mock_spotify.fetch_tracks_by_ids.return_value = [
            make_track("t1", artist_ids=("a1",)),
            make_track("t2", artist_ids=("a1",)),
        ]
        mock_spotify.fetch_artists_by_ids.return_value = [
            make_artist("a1", image="https://img/a1", genres=["pop"])
        ]
        mock_storage.bulk_write_plays.return_value = ok_result(
            artists_inserted=1,
            albums_inserted=1,
            tracks_inserted=2,
            links_inserted=3,
            plays_inserted=2,
        )

        result = await service.sync_user(profile("u1"))

        assert result.succeeded
        assert result.plays_fetched == 2
        assert result.unseen_tracks == 2
        assert result.unseen_albums == 1
        assert result.unseen_artists == 1
        assert result.insert_result is not None
        assert result.insert_result.tracks_inserted == 2
        mock_spotify.fetch_recently_played.assert_awaited_once_with(
            "access-token", 1704067200000
        )
        request: BulkWriteRequest = mock_storage.bulk_write_plays.await_args.args[0]
        assert request.user_id == "u1"
        assert [a.id for a in request.albums] == ["al1"]
        assert request.artists[0].genres == ["pop"]
        mock_storage.touch_watermark_only.assert_not_awaited()

    async def test_known_artists_not_refetched(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """Only artists missing from the store go to /v1/artists."""
        mock_spotify.fetch_recently_played.return_value = [
            make_played_item("t1", "2024-01-01T10:00:00Z")
        ]
        mock_spotify.fetch_tracks_by_ids.return_value = [
            make_track("t1", artist_ids=("a1", "a2"), album_artist_ids=("a3",))
        ]
        mock_storage.get_existing_artist_ids.return_value = {"a2"}
        mock_spotify.fetch_artists_by_ids.return_value = [
            make_artist("a1"),
            make_artist("a3"),
        ]
        mock_storage.bulk_write_plays.return_value = ok_result()

        await service.sync_user(profile("u1"))

        mock_storage.get_existing_artist_ids.assert_awaited_once_with(["a1", "a2", "a3"])
        mock_spotify.fetch_artists_by_ids.assert_awaited_once_with(
            "access-token", ["a1", "a3"]
        )

    async def test_never_synced_uses_zero_cursor(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """No watermark yet -> after=0."""
        mock_storage.get_watermark.return_value = None

        await service.sync_user(profile("u1"))

        mock_spotify.fetch_recently_played.assert_awaited_once_with("access-token", 0)

    async def test_empty_delta_touches_watermark_only(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """Zero plays -> one watermark touch, no bulk write, no lookups."""
        mock_spotify.fetch_recently_played.return_value = []

        result = await service.sync_user(profile("u1"))

        assert result.state == SyncState.DONE
        assert result.watermark_only
        assert result.insert_result == BulkInsertResult.empty()
        mock_storage.touch_watermark_only.assert_awaited_once()
        assert mock_storage.touch_watermark_only.await_args.args[0] == "u1"
        mock_storage.bulk_write_plays.assert_not_awaited()
        mock_storage.get_existing_track_ids.assert_not_awaited()

    async def test_bulk_write_failure_leaves_watermark(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """Procedure error -> ERROR after metadata, watermark never touched."""
        mock_spotify.fetch_recently_played.return_value = [
            make_played_item("t1", "2024-01-01T10:00:00Z")
        ]
        mock_spotify.fetch_tracks_by_ids.return_value = [make_track("t1")]
        mock_storage.bulk_write_plays.side_effect = TransactionFailedError("deadlock")

        result = await service.sync_user(profile("u1"))

        assert result.state == SyncState.ERROR
        assert result.failed_in == SyncState.METADATA_RESOLVED
        assert isinstance(result.error, TransactionFailedError)
        mock_storage.touch_watermark_only.assert_not_awaited()

    async def test_token_failure_stops_pipeline(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """A refresh failure ends the user in ERROR before any fetch."""
        mock_spotify.refresh_access_token.side_effect = UnexpectedResponseCodeError(
            "RefreshToken", 400
        )

        result = await service.sync_user(profile("u1"))

        assert result.state == SyncState.ERROR
        assert result.failed_in == SyncState.START
        mock_spotify.fetch_recently_played.assert_not_awaited()
        mock_storage.touch_watermark_only.assert_not_awaited()


class TestSyncAllUsers:
    """Test the fan-out across users."""

    async def test_failing_user_is_isolated(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """User 2's network error doesn't stop users 1 and 3 from writing their plays."""
        mock_storage.list_syncable_users.return_value = [
            profile("u1", "r1"),
            profile("u2", "r2"),
            profile("u3", "r3"),
        ]
        mock_spotify.fetch_recently_played.return_value = [
            make_played_item("t1", "2024-01-01T10:00:00Z")
        ]
        mock_storage.get_existing_track_ids.return_value = {"t1"}
        mock_storage.bulk_write_plays.return_value = ok_result(plays_inserted=1)

        async def refresh(token: str) -> str:
            if token == "r2":
                raise NetworkError(OSError("connection reset"))
            return f"access-{token}"

        mock_spotify.refresh_access_token.side_effect = refresh

        report = await service.sync_all_users()

        assert set(report.results) == {"u1", "u2", "u3"}
        assert report.results["u1"].state == SyncState.DONE
        assert report.results["u3"].state == SyncState.DONE
        assert report.results["u2"].state == SyncState.ERROR
        assert report.failed == ["u2"]
        assert report.has_failures
        assert mock_storage.bulk_write_plays.await_count == 2
        written_for = {
            call.args[0].user_id for call in mock_storage.bulk_write_plays.await_args_list
        }
        assert written_for == {"u1", "u3"}
        mock_storage.touch_watermark_only.assert_not_awaited()
        assert report.finished_at is not None

    async def test_empty_delta_twice_only_touches_watermark(
        self,
        service: PlaySyncService,
        mock_storage: AsyncMock,
    ) -> None:
        """Two runs with no new plays: one watermark touch each, no play rows."""
        mock_storage.list_syncable_users.return_value = [profile("u1")]

        first = await service.sync_all_users()
        second = await service.sync_all_users()

        assert first.results["u1"].state == SyncState.DONE
        assert second.results["u1"].state == SyncState.DONE
        assert mock_storage.touch_watermark_only.await_count == 2
        assert [c.args[0] for c in mock_storage.touch_watermark_only.await_args_list] == [
            "u1",
            "u1",
        ]
        mock_storage.bulk_write_plays.assert_not_awaited()

    async def test_users_without_token_are_not_started(
        self,
        service: PlaySyncService,
        mock_spotify: AsyncMock,
        mock_storage: AsyncMock,
    ) -> None:
        """Profiles without a refresh token never reach the pipeline."""
        mock_storage.list_syncable_users.return_value = [
            profile("u1"),
            profile("u2", None),
            profile("u3", ""),
        ]

        report = await service.sync_all_users()

        assert list(report.results) == ["u1"]
        assert report.skipped_without_token == ["u2", "u3"]
        mock_spotify.refresh_access_token.assert_awaited_once_with("refresh")

    async def test_no_users(self, service: PlaySyncService) -> None:
        """An empty user list is a successful, empty run."""
        report = await service.sync_all_users()

        assert report.results == {}
        assert not report.has_failures
        assert report.summary()["users"] == 0

    async def test_listing_failure_is_fatal(
        self, service: PlaySyncService, mock_storage: AsyncMock
    ) -> None:
        """Without a user list there is no run."""
        mock_storage.list_syncable_users.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await service.sync_all_users()

    async def test_max_concurrency_bounds_in_flight_users(
        self, mock_spotify: AsyncMock, mock_storage: AsyncMock
    ) -> None:
        """With max_concurrency=2 never more than two pipelines run at once."""
        mock_storage.list_syncable_users.return_value = [
            profile(f"u{i}") for i in range(6)
        ]
        in_flight = 0
        peak = 0

        async def refresh(token: str) -> str:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return "access-token"

        mock_spotify.refresh_access_token.side_effect = refresh
        service = PlaySyncService(mock_spotify, mock_storage, max_concurrency=2)

        report = await service.sync_all_users()

        assert peak == 2
        assert len(report.succeeded) == 6

    async def test_deadline_skips_users_not_started(
        self, mock_spotify: AsyncMock, mock_storage: AsyncMock
    ) -> None:
        """Past the deadline, queued users are SKIPPED; the running one finishes."""
        mock_storage.list_syncable_users.return_value = [profile("u1"), profile("u2")]

        async def slow_refresh(token: str) -> str:
            await asyncio.sleep(0.05)
            return "access-token"

        mock_spotify.refresh_access_token.side_effect = slow_refresh
        service = PlaySyncService(
            mock_spotify, mock_storage, max_concurrency=1, deadline_seconds=0.01
        )

        report = await service.sync_all_users()

        assert report.results["u1"].state == SyncState.DONE
        assert report.results["u2"].state == SyncState.SKIPPED
        assert report.not_started == ["u2"]
        assert not report.has_failures
