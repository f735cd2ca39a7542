"""Application settings loaded from environment / .env.

Hey future me - Settings is built ONCE in the CLI entry point and handed down to every
component. Business logic never calls get_settings() itself; tests construct the settings
objects directly with fake credentials.
"""

from functools import lru_cache

import httpx
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from bluebird.domain.exceptions import ConfigurationError

_ENV_FILE = ".env"


class SpotifySettings(BaseSettings):
    """Spotify app credentials and endpoint roots."""

    model_config = SettingsConfigDict(
        env_prefix="SPOTIFY_", env_file=_ENV_FILE, extra="ignore"
    )

    client_id: str = ""
    client_secret: str = ""
    accounts_base_url: str = "https://accounts.spotify.com"
    api_base_url: str = "https://api.spotify.com"
    timeout: float = 30.0


class DatabaseSettings(BaseSettings):
    """Relational store connection."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_", env_file=_ENV_FILE, extra="ignore"
    )

    url: str = ""
    # Service credential. Optional when the URL already embeds the password.
    password: str | None = None
    echo: bool = False
    pool_pre_ping: bool = True
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800

    def sqlalchemy_url(self) -> URL:
        """Build the engine URL, injecting the service credential if given."""
        url = make_url(self.url)
        if self.password:
            url = url.set(password=self.password)
        return url


class RedisSettings(BaseSettings):
    """Currently-playing cache connection."""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_", env_file=_ENV_FILE, extra="ignore"
    )

    host: str = ""
    port: int = 25061
    password: str | None = None
    ssl: bool = True
    ttl_seconds: int = 300


class SyncSettings(BaseSettings):
    """Fan-out and schedule knobs. Defaults = unbounded fan-out, hourly runs."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_", env_file=_ENV_FILE, extra="ignore"
    )

    interval_seconds: int = Field(default=3600, gt=0)
    max_concurrency: int | None = Field(default=None, gt=0)
    deadline_seconds: float | None = Field(default=None, gt=0)


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LOG_", env_file=_ENV_FILE, extra="ignore"
    )

    level: str = "INFO"
    json_format: bool = False


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(env_file=_ENV_FILE, extra="ignore")

    app_name: str = "bluebird"
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # Listen up, this is the startup gate! Missing credentials are a FATAL config error, not a
    # per-user failure - without them every single user would fail the same way. Call it right
    # after building Settings in the entry point.
    def validate_required(self) -> None:
        """Fail fast on missing or malformed required configuration.

        Raises:
            ConfigurationError: naming the first offending variable
        """
        if not self.database.url.strip():
            raise ConfigurationError("DATABASE_URL is not configured")
        try:
            self.database.sqlalchemy_url()
        except ArgumentError as e:
            raise ConfigurationError(f"Invalid DATABASE_URL format: {e}") from e

        if not self.spotify.client_id.strip():
            raise ConfigurationError("SPOTIFY_CLIENT_ID is not configured")
        if not self.spotify.client_secret.strip():
            raise ConfigurationError("SPOTIFY_CLIENT_SECRET is not configured")

        for name, value in (
            ("SPOTIFY_ACCOUNTS_BASE_URL", self.spotify.accounts_base_url),
            ("SPOTIFY_API_BASE_URL", self.spotify.api_base_url),
        ):
            try:
                parsed = httpx.URL(value)
            except httpx.InvalidURL as e:
                raise ConfigurationError(f"Invalid {name}: {value!r}") from e
            if parsed.scheme not in ("http", "https") or not parsed.host:
                raise ConfigurationError(f"Invalid {name}: {value!r}")


@lru_cache
def get_settings() -> Settings:
    """Load settings from the environment (cached for the process lifetime).

    Raises:
        ConfigurationError: if a value can't be parsed (e.g. non-numeric port)
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
