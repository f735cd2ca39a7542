"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is stored as an attribute so log lines and the CLI can print it
    # without parsing str(exception). Don't raise this directly - use a specific subclass so
    # the pipeline boundary can tell provider, storage and config failures apart.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised at startup when required configuration is missing or invalid.
    This is the only error class that aborts a run before fan-out.

    Example:
        raise ConfigurationError("SPOTIFY_CLIENT_ID is not configured")
    """

    pass


# =============================================================================
# Provider (Spotify) errors
# =============================================================================


class SpotifyServiceError(DomainException):
    """Base class for everything that can go wrong talking to Spotify."""

    pass


class MissingRefreshTokenError(SpotifyServiceError):
    """User profile has no refresh token - terminal, never retried."""

    def __init__(self, user_id: str | None = None) -> None:
        suffix = f" for user {user_id}" if user_id else ""
        super().__init__(f"No refresh token present{suffix}")
        self.user_id = user_id


class InvalidURLError(SpotifyServiceError):
    """A base URL or request URL could not be built.

    Base URLs are fixed defaults, so hitting this means a programmer or
    configuration mistake, not a transient provider problem.
    """

    def __init__(self, url: str) -> None:
        super().__init__(f"Invalid URL: {url!r}")
        self.url = url


class InvalidHTTPResponseError(SpotifyServiceError):
    """Transport gave us something that isn't a usable HTTP response."""

    def __init__(self, context: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Invalid HTTP response for {context}")
        self.context = context
        self.cause = cause


class DecodingError(SpotifyServiceError):
    """Response body didn't match the schema we expected for a request."""

    # Yo, context is the logical request name ("RecentlyPlayed", "Tracks"), not the URL -
    # URLs contain ids and tokens end up in query strings on some endpoints.
    def __init__(self, cause: BaseException | str, context: str) -> None:
        super().__init__(f"Decoding error for {context}: {cause}")
        self.cause = cause
        self.context = context


class UnexpectedResponseCodeError(SpotifyServiceError):
    """Provider answered with a status code we don't handle."""

    def __init__(self, context: str, code: int) -> None:
        super().__init__(f"Unhandled response code for {context} (got {code})")
        self.context = context
        self.code = code


class NetworkError(SpotifyServiceError):
    """Transport-level failure (DNS, connect, timeout, reset)."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Network error: {cause}")
        self.cause = cause


class SpotifyAPIError(SpotifyServiceError):
    """Structured 4xx/5xx error body returned by the provider."""

    def __init__(self, message: str, code: int) -> None:
        super().__init__(f"Spotify API error: {message} - {code}")
        self.api_message = message
        self.code = code


ProviderAPIError = SpotifyAPIError


# =============================================================================
# Storage errors
# =============================================================================


class StorageError(DomainException):
    """Base class for persistence failures."""

    pass


class TransactionFailedError(StorageError):
    """The bulk-write procedure reported status "error" - nothing was committed."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Database transaction failed: {message}")
        self.reason = message


class UnknownStorageError(StorageError):
    """Local failure before the storage call was made (e.g. JSON encoding)."""

    pass


__all__ = [
    "ConfigurationError",
    "DecodingError",
    "DomainException",
    "InvalidHTTPResponseError",
    "InvalidURLError",
    "MissingRefreshTokenError",
    "NetworkError",
    "ProviderAPIError",
    "SpotifyAPIError",
    "SpotifyServiceError",
    "StorageError",
    "TransactionFailedError",
    "UnexpectedResponseCodeError",
    "UnknownStorageError",
]
