"""Spotify wire-payload builders shared by the tests."""

from typing import Any

from bluebird.infrastructure.integrations.spotify_schemas import (
    RecentlyPlayedItem,
    SpotifyArtist,
    SpotifyTrack,
)


def artist_json(
    artist_id: str,
    name: str | None = None,
    image: str | None = None,
    genres: list[str] | None = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {"id": artist_id, "name": name or f"Artist {artist_id}"}
    if image is not None:
        data["images"] = [{"url": image, "height": 640, "width": 640}]
    if genres is not None:
        data["genres"] = genres
    return data


def track_json(
    track_id: str,
    name: str | None = None,
    album_id: str = "al1",
    album_name: str = "Album One",
    artist_ids: tuple[str, ...] = ("a1",),
    album_artist_ids: tuple[str, ...] | None = None,
    cover: str = "https://i.scdn.co/image/cover",
    duration_ms: int = 200000,
) -> dict[str, Any]:
    album_artists = album_artist_ids if album_artist_ids is not None else artist_ids
    return {
        "id": track_id,
        "name": name or f"Track {track_id}",
        "artists": [artist_json(a) for a in artist_ids],
        "album": {
            "id": album_id,
            "name": album_name,
            "images": [{"url": cover, "height": 640, "width": 640}],
            "artists": [artist_json(a) for a in album_artists],
        },
        "type": "track",
        "duration_ms": duration_ms,
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
        "uri": f"spotify:track:{track_id}",
    }


def played_item_json(track_id: str, played_at: str, **track_kwargs: Any) -> dict[str, Any]:
    return {"track": track_json(track_id, **track_kwargs), "played_at": played_at}


def make_track(track_id: str, **kwargs: Any) -> SpotifyTrack:
    return SpotifyTrack.model_validate(track_json(track_id, **kwargs))


def make_artist(artist_id: str, **kwargs: Any) -> SpotifyArtist:
    return SpotifyArtist.model_validate(artist_json(artist_id, **kwargs))


def make_played_item(track_id: str, played_at: str, **kwargs: Any) -> RecentlyPlayedItem:
    return RecentlyPlayedItem.model_validate(played_item_json(track_id, played_at, **kwargs))


