"""Tests for domain entities."""

from datetime import UTC, datetime

from bluebird.domain.entities import (
    Album,
    Artist,
    SyncRunReport,
    SyncState,
    Track,
    UserProfile,
    UserSyncResult,
    datetime_to_millis,
    millis_to_datetime,
)
from bluebird.domain.exceptions import (
    DecodingError,
    ProviderAPIError,
    SpotifyAPIError,
    SpotifyServiceError,
    StorageError,
    TransactionFailedError,
    UnexpectedResponseCodeError,
)


class TestMillis:
    """Test watermark conversions."""

    def test_round_trip(self) -> None:
        """ms -> datetime -> ms is lossless at ms precision."""
        assert datetime_to_millis(millis_to_datetime(1704067200123)) == 1704067200123

    def test_naive_is_utc(self) -> None:
        """Naive datetimes are read as UTC."""
        naive = datetime(2024, 1, 1)
        aware = datetime(2024, 1, 1, tzinfo=UTC)

        assert datetime_to_millis(naive) == datetime_to_millis(aware) == 1704067200000


class TestIdentity:
    """Test id-only equality."""

    def test_same_id_equal_despite_payload(self) -> None:
        """Stale and fresh payloads of one artist are the same entity."""
        assert Artist("a1", "Old") == Artist("a1", "New", image_url="x")
        assert len({Artist("a1", "Old"), Artist("a1", "New")}) == 1

    def test_track_album_artist_ids(self) -> None:
        """Convenience id accessors."""
        album = Album("al1", "Album", artists=(Artist("a2", "B"),))
        track = Track("t1", "Song", album=album, artists=(Artist("a1", "A"),))

        assert track.album_id == "al1"
        assert track.artist_ids == ["a1"]
        assert album.artist_ids == ["a2"]

    def test_different_kinds_never_equal(self) -> None:
        """An artist and an album sharing an id are different things."""
        assert Artist("x", "n") != Album("x", "n")


class TestUserProfile:
    """Test profile helpers."""

    def test_syncable_requires_token(self) -> None:
        """Empty and missing tokens are both unsyncable."""
        assert UserProfile(id="u1", refresh_token="r").is_syncable
        assert not UserProfile(id="u1", refresh_token="").is_syncable
        assert not UserProfile(id="u1").is_syncable


class TestSyncRunReport:
    """Test run aggregation."""

    def test_summary_buckets(self) -> None:
        """Done, error and skipped users are counted separately."""
        report = SyncRunReport(started_at=datetime.now(UTC))
        report.results = {
            "u1": UserSyncResult("u1", state=SyncState.DONE),
            "u2": UserSyncResult("u2", state=SyncState.ERROR),
            "u3": UserSyncResult("u3", state=SyncState.SKIPPED),
        }
        report.skipped_without_token = ["u4"]

        assert report.summary() == {
            "users": 3,
            "succeeded": 1,
            "failed": 1,
            "not_started": 1,
            "without_token": 1,
        }
        assert report.has_failures


class TestExceptions:
    """Test the error taxonomy."""

    def test_provider_errors_share_a_base(self) -> None:
        """Everything Spotify-related is a SpotifyServiceError."""
        assert issubclass(DecodingError, SpotifyServiceError)
        assert issubclass(UnexpectedResponseCodeError, SpotifyServiceError)
        assert ProviderAPIError is SpotifyAPIError

    def test_messages(self) -> None:
        """Messages name the request and the code."""
        assert "RefreshToken" in str(UnexpectedResponseCodeError("RefreshToken", 400))
        assert "400" in str(UnexpectedResponseCodeError("RefreshToken", 400))
        error = TransactionFailedError("deadlock detected")
        assert isinstance(error, StorageError)
        assert error.reason == "deadlock detected"
        assert "deadlock detected" in error.message
