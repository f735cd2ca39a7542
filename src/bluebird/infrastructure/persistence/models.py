"""SQLAlchemy ORM models for the tables the sync job reads or touches.

Hey future me - the schema itself is owned by the database project (migrations, the bulk-insert
procedure, link tables, play rows). We only map what we query directly: the per-user `spotify`
profile row (token + watermark) and the id columns of the catalog tables for "already known?"
lookups. create_tables() on these models is for local runs and tests only.
"""

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! Anything read back from a
# DateTime(timezone=True) column may come back naive. Attach UTC before converting to epoch ms,
# otherwise the watermark shifts by the host's UTC offset.
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class SpotifyProfileModel(Base):
    """Per-user Spotify link row, provisioned by onboarding.

    The sync job only ever writes `plays_last_fetched` (directly on the empty-delta path,
    otherwise through the bulk-insert procedure).
    """

    __tablename__ = "spotify"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    spotify_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expiry: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    plays_last_fetched: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )


class TrackModel(Base):
    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    album_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    album_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    album_cover_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    spotify_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    added_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )
    last_updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )


class ArtistModel(Base):
    __tablename__ = "artists"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    genres: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
