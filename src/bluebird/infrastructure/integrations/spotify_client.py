"""Spotify HTTP client for the play-history sync."""

import base64
import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from bluebird.config import SpotifySettings
from bluebird.domain.exceptions import (
    DecodingError,
    InvalidHTTPResponseError,
    InvalidURLError,
    MissingRefreshTokenError,
    NetworkError,
    SpotifyAPIError,
    UnexpectedResponseCodeError,
)
from bluebird.domain.ports import ISpotifyClient
from bluebird.infrastructure.integrations.spotify_schemas import (
    ArtistsResponse,
    CurrentlyPlayingResponse,
    RecentlyPlayedItem,
    RecentlyPlayedResponse,
    SpotifyArtist,
    SpotifyErrorContainer,
    SpotifyErrorResponse,
    SpotifyTrack,
    TokenResponse,
    TracksResponse,
)

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _chunked(ids: list[str], size: int) -> list[list[str]]:
    return [ids[i : i + size] for i in range(0, len(ids), size)]


class SpotifyClient(ISpotifyClient):
    """HTTP client for the four Spotify endpoints the sync job uses (+ currently playing).

    Every method is a single attempt. Failures are translated into the domain error
    taxonomy so the orchestrator can log and skip the user without knowing about httpx.
    """

    TOKEN_PATH = "/api/token"  # nosec B105 - endpoint path, not a password
    RECENTLY_PLAYED_PATH = "/v1/me/player/recently-played"
    CURRENTLY_PLAYING_PATH = "/v1/me/player/currently-playing"
    TRACKS_PATH = "/v1/tracks"
    ARTISTS_PATH = "/v1/artists"

    RECENTLY_PLAYED_LIMIT = 50
    MAX_IDS_PER_REQUEST = 50

    # Hey future me, the base URLs come from settings (defaults are the real Spotify hosts).
    # We validate them HERE, at construction, so a typo in SPOTIFY_API_BASE_URL blows up once
    # at startup instead of once per user. The httpx client itself is still lazy - creating an
    # AsyncClient outside the running loop leads to weird asyncio issues.
    def __init__(
        self,
        settings: SpotifySettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize Spotify client.

        Args:
            settings: Spotify credentials and base URLs
            client: Optional pre-built AsyncClient (tests inject a MockTransport here)

        Raises:
            InvalidURLError: If a base URL can't be parsed
        """
        self.settings = settings
        self._accounts_base = self._parse_base_url(settings.accounts_base_url)
        self._api_base = self._parse_base_url(settings.api_base_url)
        self._client = client
        self._owns_client = client is None

    @staticmethod
    def _parse_base_url(value: str) -> httpx.URL:
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as e:
            raise InvalidURLError(value) from e
        if url.scheme not in ("http", "https") or not url.host:
            raise InvalidURLError(value)
        return url

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close HTTP client (only if we created it)."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _url(self, base: httpx.URL, path: str) -> httpx.URL:
        return base.copy_with(path=path)

    # Listen up, this is THE choke point for transport errors. httpx raises a zoo of
    # exceptions; we collapse them into three domain errors:
    # - RemoteProtocolError (server hung up mid-response, garbage status line) -> InvalidHTTPResponse
    # - UnsupportedProtocol / InvalidURL -> InvalidURL (programmer error)
    # - any other TransportError (connect, timeout, DNS) -> NetworkError
    async def _send(
        self, method: str, url: httpx.URL, context: str, **kwargs: Any
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.request(method, url, **kwargs)
        except httpx.RemoteProtocolError as e:
            raise InvalidHTTPResponseError(context, e) from e
        except httpx.UnsupportedProtocol as e:
            raise InvalidURLError(str(url)) from e
        except httpx.InvalidURL as e:
            raise InvalidURLError(str(url)) from e
        except httpx.TransportError as e:
            raise NetworkError(e) from e

    @staticmethod
    def _decode(model: type[_ModelT], response: httpx.Response, context: str) -> _ModelT:
        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            raise DecodingError(e, context) from e

    # Hey future me - Spotify's error bodies come in two flavours depending on endpoint:
    #   {"error": {"status": 401, "message": "The access token expired"}}
    #   {"status": 429, "message": "..."}
    # If neither parses, we can't say anything structured -> DecodingError.
    @staticmethod
    def _api_error(response: httpx.Response, context: str) -> Exception:
        for model in (SpotifyErrorContainer, SpotifyErrorResponse):
            try:
                parsed = model.model_validate_json(response.content)
            except ValidationError:
                continue
            body = parsed.error if isinstance(parsed, SpotifyErrorContainer) else parsed
            return SpotifyAPIError(body.message, body.status)
        return DecodingError(
            f"unstructured error body with status {response.status_code}", context
        )

    def _basic_auth_header(self) -> str:
        raw = f"{self.settings.client_id}:{self.settings.client_secret}"
        return "Basic " + base64.b64encode(raw.encode("utf-8")).decode("ascii")

    # Yo, access tokens live one hour and the job runs hourly, so we ALWAYS refresh at the
    # start of a user's pipeline - no token cache needed. Form-encoded body + Basic auth,
    # Spotify rejects JSON here.
    async def refresh_access_token(self, refresh_token: str | None) -> str:
        """
        Refresh access token using the stored refresh token.

        Args:
            refresh_token: Refresh token from the user's profile row

        Returns:
            New access token

        Raises:
            MissingRefreshTokenError: If refresh_token is empty/None
            NetworkError: On transport failure
            UnexpectedResponseCodeError: On any non-200
            DecodingError: If the 200 body has no access_token
        """
        if not refresh_token:
            raise MissingRefreshTokenError()

        context = "RefreshToken"
        response = await self._send(
            "POST",
            self._url(self._accounts_base, self.TOKEN_PATH),
            context,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.settings.client_id,
            },
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Authorization": self._basic_auth_header(),
            },
        )
        if response.status_code != 200:
            raise UnexpectedResponseCodeError(context, response.status_code)

        return self._decode(TokenResponse, response, context).access_token

    async def _api_get(
        self,
        path: str,
        access_token: str,
        context: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        return await self._send(
            "GET",
            self._url(self._api_base, path),
            context,
            params=params,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    # Hey future me - `after` is our watermark (ms since epoch). We take exactly ONE page of
    # 50: Spotify only keeps the last 50 plays anyway, so following `next` buys nothing and
    # risks looping on a provider that echoes the same cursor. Order is whatever Spotify
    # gives us (newest first today) - we don't re-sort.
    async def fetch_recently_played(
        self, access_token: str, after_ms: int
    ) -> list[RecentlyPlayedItem]:
        """
        Get plays newer than after_ms.

        Args:
            access_token: OAuth access token
            after_ms: Cursor, ms since epoch

        Returns:
            Recently played items in provider order

        Raises:
            SpotifyAPIError: Structured provider error
            DecodingError: Unstructured error or unexpected 200 body
        """
        context = "RecentlyPlayed"
        response = await self._api_get(
            self.RECENTLY_PLAYED_PATH,
            access_token,
            context,
            params={"limit": self.RECENTLY_PLAYED_LIMIT, "after": after_ms},
        )
        if response.status_code != 200:
            raise self._api_error(response, context)

        return list(self._decode(RecentlyPlayedResponse, response, context).items)

    async def fetch_tracks_by_ids(
        self, access_token: str, ids: list[str]
    ) -> list[SpotifyTrack]:
        """
        Get full track objects for ids (chunks of 50, request order kept).

        Args:
            access_token: OAuth access token
            ids: Spotify track ids

        Returns:
            Tracks with null slots (deleted/invalid ids) dropped
        """
        tracks: list[SpotifyTrack] = []
        for chunk in _chunked(ids, self.MAX_IDS_PER_REQUEST):
            response = await self._api_get(
                self.TRACKS_PATH, access_token, "Tracks", params={"ids": ",".join(chunk)}
            )
            if response.status_code != 200:
                raise self._api_error(response, "Tracks")
            decoded = self._decode(TracksResponse, response, "Tracks")
            tracks.extend(t for t in decoded.tracks if t is not None)
        return tracks

    async def fetch_artists_by_ids(
        self, access_token: str, ids: list[str]
    ) -> list[SpotifyArtist]:
        """
        Get full artist objects (with images + genres) for ids, chunks of 50.

        Args:
            access_token: OAuth access token
            ids: Spotify artist ids

        Returns:
            Artists with null slots dropped
        """
        artists: list[SpotifyArtist] = []
        for chunk in _chunked(ids, self.MAX_IDS_PER_REQUEST):
            response = await self._api_get(
                self.ARTISTS_PATH,
                access_token,
                "Artists",
                params={"ids": ",".join(chunk)},
            )
            if response.status_code != 200:
                raise self._api_error(response, "Artists")
            decoded = self._decode(ArtistsResponse, response, "Artists")
            artists.extend(a for a in decoded.artists if a is not None)
        return artists

    # Yo, 204 = nothing playing. Other non-200s (e.g. 401 for a user that revoked us) are
    # also treated as "nothing playing" - the cache entry just gets cleared.
    async def fetch_currently_playing(
        self, access_token: str
    ) -> CurrentlyPlayingResponse | None:
        """Get the currently playing item or None."""
        context = "CurrentlyPlaying"
        response = await self._api_get(
            self.CURRENTLY_PLAYING_PATH, access_token, context
        )
        if response.status_code == 204:
            return None
        if response.status_code != 200:
            logger.info(
                "spotify.currently_playing.unavailable",
                extra={"status_code": response.status_code},
            )
            return None

        return self._decode(CurrentlyPlayingResponse, response, context)

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
