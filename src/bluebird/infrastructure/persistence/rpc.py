"""Typed payloads for the bulk-write stored procedure.

Hey future me - the procedure takes four JSON-array parameters plus user id and fetch timestamp.
Instead of assembling dicts-of-Any by hand, every row shape is a pydantic model here, so a
renamed field fails loudly in tests instead of silently writing NULLs in production.

Procedure signature (PostgreSQL, owned by the database project):

    insert_user_song_plays_with_tracks(
        user_plays_data jsonb, unseen_tracks_data jsonb, unseen_artists_data jsonb,
        unseen_albums_data jsonb, user_id uuid, current_fetch_ts timestamptz
    ) RETURNS jsonb

Returned JSON: {status: "ok"|"error", error?, artists_inserted, albums_inserted,
tracks_inserted, links_inserted, plays_inserted, message?}.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, TypeAdapter
from pydantic_core import PydanticSerializationError

from bluebird.domain.entities import (
    Album,
    Artist,
    BulkInsertResult,
    PlayEvent,
    Track,
)
from bluebird.domain.exceptions import UnknownStorageError

BULK_WRITE_PROCEDURE = "insert_user_song_plays_with_tracks"


class PlayRowPayload(BaseModel):
    user_id: str
    track_id: str
    played_at: str


class TrackArtistPayload(BaseModel):
    id: str
    name: str


class TrackPayload(BaseModel):
    id: str
    name: str
    artists: list[TrackArtistPayload]
    album_id: str
    album_name: str
    duration_ms: int
    album_cover_url: str
    spotify_url: str


class ArtistPayload(BaseModel):
    id: str
    name: str
    image_url: str
    genres: list[str]


class AlbumPayload(BaseModel):
    id: str
    name: str
    image_url: str
    artist_ids: list[str]


_PLAYS = TypeAdapter(list[PlayRowPayload])
_TRACKS = TypeAdapter(list[TrackPayload])
_ARTISTS = TypeAdapter(list[ArtistPayload])
_ALBUMS = TypeAdapter(list[AlbumPayload])


def _json_array(adapter: TypeAdapter[Any], rows: list[Any], name: str) -> str:
    try:
        return adapter.dump_json(rows).decode("utf-8")
    except (PydanticSerializationError, UnicodeDecodeError, ValueError) as e:
        raise UnknownStorageError(f"Failed to encode {name} to JSON: {e}") from e


@dataclass(frozen=True)
class BulkWriteRequest:
    """Everything one user's sync pass writes, in one atomic call."""

    user_id: str
    current_fetch_ts: datetime
    plays: list[PlayRowPayload] = field(default_factory=list)
    tracks: list[TrackPayload] = field(default_factory=list)
    artists: list[ArtistPayload] = field(default_factory=list)
    albums: list[AlbumPayload] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        user_id: str,
        current_fetch_ts: datetime,
        plays: list[PlayEvent],
        tracks: list[Track],
        artists: list[Artist],
        albums: list[Album],
    ) -> "BulkWriteRequest":
        return cls(
            user_id=user_id,
            current_fetch_ts=current_fetch_ts,
            plays=[
                PlayRowPayload(
                    user_id=p.user_id, track_id=p.track_id, played_at=p.played_at
                )
                for p in plays
            ],
            tracks=[
                TrackPayload(
                    id=t.id,
                    name=t.name,
                    artists=[TrackArtistPayload(id=a.id, name=a.name) for a in t.artists],
                    album_id=t.album_id,
                    album_name=t.album.name,
                    duration_ms=t.duration_ms,
                    album_cover_url=t.album.image_url,
                    spotify_url=t.spotify_url,
                )
                for t in tracks
            ],
            artists=[
                ArtistPayload(
                    id=a.id, name=a.name, image_url=a.image_url, genres=list(a.genres)
                )
                for a in artists
            ],
            albums=[
                AlbumPayload(
                    id=al.id,
                    name=al.name,
                    image_url=al.image_url,
                    artist_ids=al.artist_ids,
                )
                for al in albums
            ],
        )

    def fetch_ts_iso(self) -> str:
        ts = self.current_fetch_ts
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        return ts.isoformat()

    def to_params(self) -> dict[str, str]:
        """Encode the request into the procedure's named string parameters.

        Raises:
            UnknownStorageError: If a payload can't be JSON-encoded
        """
        return {
            "user_plays_data": _json_array(_PLAYS, self.plays, "user_plays_data"),
            "unseen_tracks_data": _json_array(
                _TRACKS, self.tracks, "unseen_tracks_data"
            ),
            "unseen_artists_data": _json_array(
                _ARTISTS, self.artists, "unseen_artists_data"
            ),
            "unseen_albums_data": _json_array(
                _ALBUMS, self.albums, "unseen_albums_data"
            ),
            "user_id": self.user_id,
            "current_fetch_ts": self.fetch_ts_iso(),
        }


class BulkInsertResponse(BaseModel):
    """Procedure response body."""

    model_config = ConfigDict(extra="ignore")

    status: Literal["ok", "error"]
    error: str | None = None
    message: str | None = None
    artists_inserted: int = 0
    albums_inserted: int = 0
    tracks_inserted: int = 0
    links_inserted: int = 0
    plays_inserted: int = 0

    def to_result(self) -> BulkInsertResult:
        return BulkInsertResult(
            status=self.status,
            error=self.error,
            message=self.message,
            artists_inserted=self.artists_inserted,
            albums_inserted=self.albums_inserted,
            tracks_inserted=self.tracks_inserted,
            links_inserted=self.links_inserted,
            plays_inserted=self.plays_inserted,
        )
