"""Pydantic wire models for the Spotify Web API endpoints we consume.

Hey future me - these mirror Spotify's JSON exactly, nothing more. They are NOT the canonical
Track/Artist/Album entities (see bluebird.domain.entities) - the normalizer maps them over.

The "currently playing" endpoint returns overlapping-but-different shapes compared to the
batch /tracks endpoint (images may be missing, type may be "episode"...). It gets its own
models below instead of one lenient do-everything type, so a schema drift in one endpoint
shows up as a DecodingError for THAT endpoint only.
"""

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class SpotifyImage(_WireModel):
    url: str
    height: int | None = None
    width: int | None = None


class SpotifyArtist(_WireModel):
    """Artist object - full from /v1/artists, simplified inside track/album objects."""

    id: str
    name: str
    images: list[SpotifyImage] | None = None
    genres: list[str] | None = None


class SpotifyAlbum(_WireModel):
    id: str
    name: str
    images: list[SpotifyImage]
    artists: list[SpotifyArtist]


class SpotifyExternalUrls(_WireModel):
    spotify: str


class SpotifyTrack(_WireModel):
    """Full track object as returned by /v1/tracks and /me/player/recently-played."""

    id: str
    name: str
    artists: list[SpotifyArtist]
    album: SpotifyAlbum
    type: str
    duration_ms: int
    external_urls: SpotifyExternalUrls
    uri: str


class RecentlyPlayedItem(_WireModel):
    track: SpotifyTrack
    played_at: str


class RecentlyPlayedCursors(_WireModel):
    after: str | None = None
    before: str | None = None


class RecentlyPlayedResponse(_WireModel):
    items: list[RecentlyPlayedItem]
    next: str | None = None
    cursors: RecentlyPlayedCursors | None = None
    limit: int | None = None


class TracksResponse(_WireModel):
    # Spotify returns null in the slot of a deleted/unknown id
    tracks: list[SpotifyTrack | None]


class ArtistsResponse(_WireModel):
    artists: list[SpotifyArtist | None]


class TokenResponse(_WireModel):
    access_token: str
    token_type: str | None = None
    expires_in: int | None = None
    scope: str | None = None
    refresh_token: str | None = None


class SpotifyErrorResponse(_WireModel):
    status: int
    message: str


class SpotifyErrorContainer(_WireModel):
    error: SpotifyErrorResponse


# =============================================================================
# Currently-playing variant
# =============================================================================


class CurrentlyPlayingAlbum(_WireModel):
    id: str
    name: str
    images: list[SpotifyImage] = Field(default_factory=list)
    artists: list[SpotifyArtist] = Field(default_factory=list)


class CurrentlyPlayingItem(_WireModel):
    id: str
    name: str
    type: str = "track"
    artists: list[SpotifyArtist] = Field(default_factory=list)
    album: CurrentlyPlayingAlbum | None = None
    duration_ms: int | None = None


class CurrentlyPlayingResponse(_WireModel):
    item: CurrentlyPlayingItem | None = None
    is_playing: bool | None = None
    progress_ms: int | None = None
    timestamp: int | None = None
