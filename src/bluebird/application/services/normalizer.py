"""Wire-to-canonical mapping and batch dedup for the play sync.

Hey future me - everything in here is PURE: no I/O, no logging, no clock. That's what makes the
dedup rules cheap to test.

Dedup rule: id-keyed, FIRST occurrence wins, insertion order is kept. If Spotify hands us two
payloads for the same id within one run (stale vs fresh metadata), we keep whichever we met
first. Don't "fix" this to last-wins - downstream expectations depend on it.
"""

from collections.abc import Iterable, Sequence
from typing import TypeVar

from bluebird.domain.entities import Album, Artist, PlayEvent, Track, TrackDetail
from bluebird.infrastructure.integrations.spotify_schemas import (
    CurrentlyPlayingItem,
    RecentlyPlayedItem,
    SpotifyAlbum,
    SpotifyArtist,
    SpotifyImage,
    SpotifyTrack,
)

_EntityT = TypeVar("_EntityT", Track, Artist, Album)


def _first_image_url(images: Sequence[SpotifyImage] | None) -> str:
    if not images:
        return ""
    return images[0].url


def _dedup_by_id(entities: Iterable[_EntityT]) -> list[_EntityT]:
    seen: dict[str, _EntityT] = {}
    for entity in entities:
        if entity.id not in seen:
            seen[entity.id] = entity
    return list(seen.values())


# =============================================================================
# Wire -> canonical
# =============================================================================


def artist_from_wire(artist: SpotifyArtist) -> Artist:
    return Artist(
        id=artist.id,
        name=artist.name,
        image_url=_first_image_url(artist.images),
        genres=tuple(artist.genres or ()),
    )


def album_from_wire(album: SpotifyAlbum) -> Album:
    return Album(
        id=album.id,
        name=album.name,
        image_url=_first_image_url(album.images),
        artists=tuple(artist_from_wire(a) for a in album.artists),
    )


def track_from_wire(track: SpotifyTrack) -> Track:
    return Track(
        id=track.id,
        name=track.name,
        album=album_from_wire(track.album),
        artists=tuple(artist_from_wire(a) for a in track.artists),
        duration_ms=track.duration_ms,
        spotify_url=track.external_urls.spotify,
    )


def currently_playing_track_ids(item: CurrentlyPlayingItem | None) -> list[str]:
    """Ids worth re-fetching for a currently-playing item (tracks only, no episodes)."""
    if item is None or item.type != "track":
        return []
    return [item.id]


def track_detail_from_wire(
    track: SpotifyTrack, listened_at: int | None = None
) -> TrackDetail:
    return TrackDetail.from_track(track_from_wire(track), listened_at=listened_at)


# =============================================================================
# Batch dedup
# =============================================================================


def dedup_tracks(tracks: Iterable[Track]) -> list[Track]:
    """Unique tracks by id, first occurrence kept, order stable."""
    return _dedup_by_id(tracks)


def dedup_albums(tracks: Iterable[Track]) -> list[Album]:
    """Unique albums referenced by tracks, each carrying its artist ids."""
    return _dedup_by_id(track.album for track in tracks)


def dedup_artists(tracks: Iterable[Track], albums: Iterable[Album]) -> list[Artist]:
    """Union of track artists then album artists, unique by id, first kept."""

    def _all() -> Iterable[Artist]:
        for track in tracks:
            yield from track.artists
        for album in albums:
            yield from album.artists

    return _dedup_by_id(_all())


def to_play_rows(items: Iterable[RecentlyPlayedItem], user_id: str) -> list[PlayEvent]:
    """1:1 projection of recently-played items into play rows (no dedup)."""
    return [
        PlayEvent(user_id=user_id, track_id=item.track.id, played_at=item.played_at)
        for item in items
    ]


def unique_track_ids(items: Iterable[RecentlyPlayedItem]) -> list[str]:
    """Distinct track ids of a delta, in first-seen order."""
    return list(dict.fromkeys(item.track.id for item in items))


def dedup_artist_records(artists: Iterable[Artist]) -> list[Artist]:
    """Unique full artist records (e.g. a /v1/artists batch), first kept."""
    return _dedup_by_id(artists)
