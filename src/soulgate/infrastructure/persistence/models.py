"""SQLAlchemy ORM models for SoulGate."""

import uuid
from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy import ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite doesn't preserve timezone info! Datetimes come back naive. Use this
# before comparing DB datetimes with datetime.now(UTC).
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# CATALOG
# Hey future me - artist credits live in mapping tables (track_artists, album_artists,
# playlist_artists), NOT in an artist_id column! A song can be co-credited and the whitelist
# cascade needs the COMPLETE credit set to decide whether it stays. Artist ids are the opaque
# ids from the whitelist source, so they are plain strings, not our UUIDs.
# =============================================================================


class ArtistModel(Base):
    """SQLAlchemy model for Artist entity."""

    __tablename__ = "soulgate_artists"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (Index("ix_soulgate_artists_name_lower", func.lower(name)),)


class AlbumModel(Base):
    """SQLAlchemy model for Album entity."""

    __tablename__ = "soulgate_albums"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    release_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    tracks: Mapped[list["TrackModel"]] = relationship(
        "TrackModel", back_populates="album", passive_deletes=True
    )


class TrackModel(Base):
    """SQLAlchemy model for Track (song) entity."""

    __tablename__ = "soulgate_tracks"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # Song-album association. SET NULL keeps a co-credited song alive when its album goes.
    album_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("soulgate_albums.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    track_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    album: Mapped["AlbumModel | None"] = relationship(
        "AlbumModel", back_populates="tracks"
    )


class PlaylistModel(Base):
    """SQLAlchemy model for Playlist entity."""

    __tablename__ = "playlists"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    playlist_tracks: Mapped[list["PlaylistTrackModel"]] = relationship(
        "PlaylistTrackModel",
        back_populates="playlist",
        passive_deletes=True,
        order_by="PlaylistTrackModel.position",
    )


class PlaylistTrackModel(Base):
    """Association table for Playlist-Track relationship."""

    __tablename__ = "playlist_tracks"

    playlist_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("playlists.id", ondelete="CASCADE"), primary_key=True
    )
    track_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("soulgate_tracks.id", ondelete="CASCADE"),
        primary_key=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    playlist: Mapped["PlaylistModel"] = relationship(
        "PlaylistModel", back_populates="playlist_tracks"
    )

    __table_args__ = (
        Index("ix_playlist_tracks_position", "playlist_id", "position"),
        Index("ix_playlist_tracks_track", "track_id"),
    )


class TrackArtistModel(Base):
    """Song-artist credit."""

    __tablename__ = "track_artists"

    track_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("soulgate_tracks.id", ondelete="CASCADE"),
        primary_key=True,
    )
    artist_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("soulgate_artists.id", ondelete="CASCADE"),
        primary_key=True,
    )

    __table_args__ = (Index("ix_track_artists_artist", "artist_id"),)


class AlbumArtistModel(Base):
    """Album-artist credit."""

    __tablename__ = "album_artists"

    album_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("soulgate_albums.id", ondelete="CASCADE"),
        primary_key=True,
    )
    artist_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("soulgate_artists.id", ondelete="CASCADE"),
        primary_key=True,
    )

    __table_args__ = (Index("ix_album_artists_artist", "artist_id"),)


class PlaylistArtistModel(Base):
    """Playlist-artist association (e.g. artist radio or "This Is ..." playlists)."""

    __tablename__ = "playlist_artists"

    playlist_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("playlists.id", ondelete="CASCADE"), primary_key=True
    )
    artist_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("soulgate_artists.id", ondelete="CASCADE"),
        primary_key=True,
    )

    __table_args__ = (Index("ix_playlist_artists_artist", "artist_id"),)


# =============================================================================
# WHITELIST SNAPSHOT
# Hey future me - there is exactly ONE snapshot row (id=1). It and whitelist_entries are only
# ever rewritten together inside one transaction, so readers see old or new, never a mix.
# =============================================================================

SNAPSHOT_ROW_ID = 1


class WhitelistSnapshotModel(Base):
    """Header row of the persisted whitelist snapshot."""

    __tablename__ = "whitelist_snapshot"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SNAPSHOT_ROW_ID)
    content_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False
    )
    artist_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    committed_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        sa.CheckConstraint(f"id = {SNAPSHOT_ROW_ID}", name="ck_whitelist_snapshot_single_row"),
    )


class WhitelistEntryModel(Base):
    """One approved artist of the persisted snapshot."""

    __tablename__ = "whitelist_entries"

    artist_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
