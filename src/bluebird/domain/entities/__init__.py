"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


# Hey future me, the watermark lives in the DB as a timestamp but everything in the pipeline
# talks milliseconds since epoch (that's what Spotify's `after` cursor wants). These two
# helpers are the ONLY place we convert - truncation to whole ms is fine, we never gain time.
def datetime_to_millis(value: datetime) -> int:
    """Convert an aware (or naive-UTC) datetime to epoch milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def millis_to_datetime(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return _EPOCH + timedelta(milliseconds=value)


# Listen up, these three catalog entities compare and hash on `id` ONLY. Spotify returns the
# same track with slightly different payloads depending on the endpoint (simplified vs full
# artist objects, missing images...). Two objects with the same id are interchangeable for
# dedup purposes - whichever we saw first wins (see normalizer).
@dataclass(frozen=True, eq=False)
class Artist:
    """Canonical artist record keyed by Spotify artist id."""

    id: str
    name: str
    image_url: str = ""
    genres: tuple[str, ...] = ()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Artist):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("artist", self.id))


@dataclass(frozen=True, eq=False)
class Album:
    """Canonical album record; keeps its artists for the album/artist link table."""

    id: str
    name: str
    image_url: str = ""
    artists: tuple[Artist, ...] = ()

    @property
    def artist_ids(self) -> list[str]:
        return [artist.id for artist in self.artists]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Album):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("album", self.id))


@dataclass(frozen=True, eq=False)
class Track:
    """Canonical track record.

    References its album and an ordered tuple of artists. Artists here may be
    the provider's simplified objects (no images/genres); full artist records
    are fetched separately for unseen ids.
    """

    id: str
    name: str
    album: Album
    artists: tuple[Artist, ...] = ()
    duration_ms: int = 0
    spotify_url: str = ""

    @property
    def album_id(self) -> str:
        return self.album.id

    @property
    def artist_ids(self) -> list[str]:
        return [artist.id for artist in self.artists]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Track):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("track", self.id))


@dataclass(frozen=True)
class PlayEvent:
    """One play of one track by one user. Never deduped - replays are legit."""

    user_id: str
    track_id: str
    played_at: str  # provider-native ISO string, passed through untouched


@dataclass(frozen=True)
class UserProfile:
    """A registered user as far as the sync job cares."""

    id: str
    spotify_user_id: str | None = None
    refresh_token: str | None = None
    plays_last_fetched: int | None = None  # ms since epoch, None = never synced

    @property
    def is_syncable(self) -> bool:
        return bool(self.refresh_token)


@dataclass(frozen=True)
class BulkInsertResult:
    """Acknowledgement of the single bulk-write call. No per-row results exist."""

    status: str
    artists_inserted: int = 0
    albums_inserted: int = 0
    tracks_inserted: int = 0
    links_inserted: int = 0
    plays_inserted: int = 0
    error: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @classmethod
    def empty(cls) -> "BulkInsertResult":
        """Result used when there was nothing to write (watermark-only path)."""
        return cls(status="ok", message="watermark only")


@dataclass(frozen=True)
class PlayCountsResult:
    """Row counts from the aggregate recompute procedures."""

    artist_play_counts: int
    track_counts: int
    weekly_plays: int


# Hey future me - TrackDetail is what the "currently playing" command stores in Redis. The key
# names are part of the contract with the frontend that reads the cache, so DON'T rename them.
@dataclass(frozen=True)
class TrackDetailArtist:
    id: str
    name: str
    image_url: str = ""


@dataclass(frozen=True)
class TrackDetail:
    """Display-ready snapshot of a track for the currently-playing cache."""

    track_id: str
    album_id: str
    name: str
    artists: tuple[TrackDetailArtist, ...]
    duration_ms: int
    spotify_url: str
    album_name: str
    album_image_url: str
    listened_at: int | None = None

    @classmethod
    def from_track(
        cls, track: Track, listened_at: int | None = None
    ) -> "TrackDetail":
        return cls(
            track_id=track.id,
            album_id=track.album_id,
            name=track.name,
            artists=tuple(
                TrackDetailArtist(id=a.id, name=a.name, image_url=a.image_url)
                for a in track.artists
            ),
            duration_ms=track.duration_ms,
            spotify_url=track.spotify_url,
            album_name=track.album.name,
            album_image_url=track.album.image_url,
            listened_at=listened_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "track_id": self.track_id,
            "album_id": self.album_id,
            "name": self.name,
            "artists": [
                {"id": a.id, "image_url": a.image_url, "name": a.name}
                for a in self.artists
            ],
            "duration_ms": self.duration_ms,
            "spotify_url": self.spotify_url,
            "album_name": self.album_name,
            "album_image_url": self.album_image_url,
            "listened_at": self.listened_at,
        }


# =============================================================================
# Sync pipeline state
# =============================================================================


class SyncState(str, Enum):
    """Per-user pipeline states. ERROR and SKIPPED are terminal sinks."""

    START = "start"
    TOKEN_REFRESHED = "token_refreshed"
    DELTA_FETCHED = "delta_fetched"
    METADATA_RESOLVED = "metadata_resolved"
    WRITTEN = "written"
    DONE = "done"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class UserSyncResult:
    """Outcome of one user's pipeline, returned by that user's task."""

    user_id: str
    state: SyncState = SyncState.START
    failed_in: SyncState | None = None
    error: BaseException | None = None
    plays_fetched: int = 0
    unseen_tracks: int = 0
    unseen_artists: int = 0
    unseen_albums: int = 0
    insert_result: BulkInsertResult | None = None
    watermark_only: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == SyncState.DONE


@dataclass
class SyncRunReport:
    """Aggregated outcome of one run, keyed by user id."""

    started_at: datetime
    finished_at: datetime | None = None
    results: dict[str, UserSyncResult] = field(default_factory=dict)
    skipped_without_token: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        return [uid for uid, r in self.results.items() if r.succeeded]

    @property
    def failed(self) -> list[str]:
        return [uid for uid, r in self.results.items() if r.state == SyncState.ERROR]

    @property
    def not_started(self) -> list[str]:
        return [
            uid for uid, r in self.results.items() if r.state == SyncState.SKIPPED
        ]

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)

    def summary(self) -> dict[str, int]:
        return {
            "users": len(self.results),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "not_started": len(self.not_started),
            "without_token": len(self.skipped_without_token),
        }


__all__ = [
    "Album",
    "Artist",
    "BulkInsertResult",
    "PlayCountsResult",
    "PlayEvent",
    "SyncRunReport",
    "SyncState",
    "Track",
    "TrackDetail",
    "TrackDetailArtist",
    "UserProfile",
    "UserSyncResult",
    "datetime_to_millis",
    "millis_to_datetime",
]
