"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

from bluebird.domain.entities import (
    BulkInsertResult,
    PlayCountsResult,
    TrackDetail,
    UserProfile,
)

if TYPE_CHECKING:
    from bluebird.infrastructure.integrations.spotify_schemas import (
        CurrentlyPlayingResponse,
        RecentlyPlayedItem,
        SpotifyArtist,
        SpotifyTrack,
    )
    from bluebird.infrastructure.persistence.rpc import BulkWriteRequest


class ISpotifyClient(ABC):
    """Port for the Spotify endpoints the sync job consumes.

    All methods are single-attempt: no retries, no caching.
    """

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str | None) -> str:
        """
        Exchange a refresh token for a fresh access token.

        Args:
            refresh_token: Stored refresh token for the user

        Returns:
            Access token string
        """
        pass

    @abstractmethod
    async def fetch_recently_played(
        self, access_token: str, after_ms: int
    ) -> list["RecentlyPlayedItem"]:
        """
        Fetch plays newer than the watermark.

        Args:
            access_token: OAuth access token
            after_ms: Watermark in ms since epoch (cursor)

        Returns:
            Recently played items in provider order
        """
        pass

    @abstractmethod
    async def fetch_tracks_by_ids(
        self, access_token: str, ids: list[str]
    ) -> list["SpotifyTrack"]:
        """Batch-fetch full track objects. Empty ids -> [] without a request."""
        pass

    @abstractmethod
    async def fetch_artists_by_ids(
        self, access_token: str, ids: list[str]
    ) -> list["SpotifyArtist"]:
        """Batch-fetch full artist objects. Empty ids -> [] without a request."""
        pass

    @abstractmethod
    async def fetch_currently_playing(
        self, access_token: str
    ) -> "CurrentlyPlayingResponse | None":
        """Get the user's currently playing item, None when nothing is playing."""
        pass


class IStorageGateway(ABC):
    """Port for the relational store (reads + the single bulk-write procedure)."""

    @abstractmethod
    async def list_syncable_users(self) -> list[UserProfile]:
        """List all provisioned user profiles (including ones without a token)."""
        pass

    @abstractmethod
    async def get_watermark(self, user_id: str) -> int | None:
        """Get plays_last_fetched in ms since epoch, None if never synced."""
        pass

    @abstractmethod
    async def get_existing_track_ids(self, candidate_ids: list[str]) -> set[str]:
        """Return the subset of candidate ids already present in the store."""
        pass

    @abstractmethod
    async def get_existing_artist_ids(self, candidate_ids: list[str]) -> set[str]:
        """Return the subset of candidate artist ids already present in the store."""
        pass

    @abstractmethod
    async def bulk_write_plays(self, request: "BulkWriteRequest") -> BulkInsertResult:
        """Insert plays + unseen entities atomically and advance the watermark."""
        pass

    @abstractmethod
    async def touch_watermark_only(self, user_id: str, now: datetime) -> None:
        """Advance the watermark without writing any rows (empty delta)."""
        pass

    @abstractmethod
    async def recompute_play_counts(self) -> PlayCountsResult:
        """Run the aggregate play-count procedures."""
        pass


class INowPlayingCache(ABC):
    """Port for the short-lived currently-playing cache."""

    @abstractmethod
    async def store(self, user_id: str, detail: TrackDetail | None) -> None:
        """Store detail for user, or clear the entry when detail is None."""
        pass


__all__ = ["INowPlayingCache", "ISpotifyClient", "IStorageGateway"]
