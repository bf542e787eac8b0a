"""create catalog and whitelist tables

Revision ID: 3f9c1a2b7d40
Revises:
Create Date: 2026-10-19 09:00:00.000000

Hey future me - this is the BASELINE schema.

Catalog: soulgate_artists, soulgate_albums, soulgate_tracks, playlists plus the credit mapping
tables (track_artists, album_artists, playlist_artists) and playlist_tracks.
Whitelist: whitelist_snapshot (exactly one row, id=1) and whitelist_entries.

Artist credits are ON DELETE CASCADE at the database level too, but the app deletes children
explicitly in dependency order inside one transaction and never relies on the FK cascade.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3f9c1a2b7d40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "soulgate_artists",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_soulgate_artists_name", "soulgate_artists", ["name"])
    op.create_index(
        "ix_soulgate_artists_name_lower",
        "soulgate_artists",
        [sa.text("lower(name)")],
    )

    op.create_table(
        "soulgate_albums",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("release_year", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_soulgate_albums_title", "soulgate_albums", ["title"])

    op.create_table(
        "soulgate_tracks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column(
            "album_id",
            sa.String(36),
            sa.ForeignKey("soulgate_albums.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("track_number", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_soulgate_tracks_title", "soulgate_tracks", ["title"])
    op.create_index("ix_soulgate_tracks_album_id", "soulgate_tracks", ["album_id"])

    op.create_table(
        "playlists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_playlists_name", "playlists", ["name"])

    op.create_table(
        "playlist_tracks",
        sa.Column(
            "playlist_id",
            sa.String(36),
            sa.ForeignKey("playlists.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "track_id",
            sa.String(36),
            sa.ForeignKey("soulgate_tracks.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("added_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_playlist_tracks_position", "playlist_tracks", ["playlist_id", "position"]
    )
    op.create_index("ix_playlist_tracks_track", "playlist_tracks", ["track_id"])

    for table, entity_column, entity_table, id_length in (
        ("track_artists", "track_id", "soulgate_tracks", 36),
        ("album_artists", "album_id", "soulgate_albums", 36),
        ("playlist_artists", "playlist_id", "playlists", 36),
    ):
        op.create_table(
            table,
            sa.Column(
                entity_column,
                sa.String(id_length),
                sa.ForeignKey(f"{entity_table}.id", ondelete="CASCADE"),
                primary_key=True,
            ),
            sa.Column(
                "artist_id",
                sa.String(64),
                sa.ForeignKey("soulgate_artists.id", ondelete="CASCADE"),
                primary_key=True,
            ),
        )
        op.create_index(f"ix_{table}_artist", table, ["artist_id"])

    op.create_table(
        "whitelist_snapshot",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("content_hash", sa.String(128), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("artist_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("id = 1", name="ck_whitelist_snapshot_single_row"),
    )

    op.create_table(
        "whitelist_entries",
        sa.Column("artist_id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(255), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("whitelist_entries")
    op.drop_table("whitelist_snapshot")
    for table in ("playlist_artists", "album_artists", "track_artists"):
        op.drop_index(f"ix_{table}_artist", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_playlist_tracks_track", table_name="playlist_tracks")
    op.drop_index("ix_playlist_tracks_position", table_name="playlist_tracks")
    op.drop_table("playlist_tracks")
    op.drop_index("ix_playlists_name", table_name="playlists")
    op.drop_table("playlists")
    op.drop_index("ix_soulgate_tracks_album_id", table_name="soulgate_tracks")
    op.drop_index("ix_soulgate_tracks_title", table_name="soulgate_tracks")
    op.drop_table("soulgate_tracks")
    op.drop_index("ix_soulgate_albums_title", table_name="soulgate_albums")
    op.drop_table("soulgate_albums")
    op.drop_index("ix_soulgate_artists_name_lower", table_name="soulgate_artists")
    op.drop_index("ix_soulgate_artists_name", table_name="soulgate_artists")
    op.drop_table("soulgate_artists")
