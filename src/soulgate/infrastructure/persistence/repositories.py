"""Repository implementations for the whitelist storage contract."""

import logging
from collections import defaultdict
from collections.abc import Iterable, Iterator
from typing import Any

from sqlalchemy import delete, exists, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from soulgate.domain.entities import (
    CatalogEntityRef,
    CleanupReport,
    DeletionPlan,
    EntityKind,
    WhitelistEntry,
    WhitelistSnapshot,
)
from soulgate.domain.exceptions import StorageError, StorageErrorKind
from soulgate.domain.ports import IWhitelistStorage
from soulgate.infrastructure.persistence.database import Database
from soulgate.infrastructure.persistence.models import (
    SNAPSHOT_ROW_ID,
    AlbumArtistModel,
    AlbumModel,
    ArtistModel,
    PlaylistArtistModel,
    PlaylistModel,
    PlaylistTrackModel,
    TrackArtistModel,
    TrackModel,
    WhitelistEntryModel,
    WhitelistSnapshotModel,
    ensure_utc_aware,
)
from soulgate.infrastructure.persistence.retry import with_db_retry

logger = logging.getLogger(__name__)

# SQLite caps bound parameters per statement, keep IN (...) lists well below it.
IN_CLAUSE_CHUNK_SIZE = 500


def _chunked(ids: Iterable[str], size: int | None = None) -> Iterator[list[str]]:
    size = size or IN_CLAUSE_CHUNK_SIZE
    batch: list[str] = []
    for item in sorted(ids):
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def _storage_error(action: str, error: SQLAlchemyError) -> StorageError:
    kind = (
        StorageErrorKind.CONSTRAINT
        if isinstance(error, IntegrityError)
        else StorageErrorKind.TRANSACTION_FAILED
    )
    return StorageError(kind, f"Failed to {action}: {error}")


# Hey future me, every public method here opens its OWN session_scope() transaction. The
# private _tx methods carry @with_db_retry so a "database is locked" retry starts a brand new
# transaction; the public wrappers turn whatever is left into StorageError. By the time the
# StorageError is raised, session_scope has ALREADY rolled back.
class SqlAlchemyWhitelistStorage(IWhitelistStorage):
    """Whitelist snapshot and catalog storage backed by SQLAlchemy."""

    # (mapping model, entity id column name, kind)
    _CREDIT_TABLES: tuple[tuple[Any, str, EntityKind], ...] = (
        (TrackArtistModel, "track_id", EntityKind.SONG),
        (AlbumArtistModel, "album_id", EntityKind.ALBUM),
        (PlaylistArtistModel, "playlist_id", EntityKind.PLAYLIST),
    )

    def __init__(self, db: Database) -> None:
        self._db = db

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    async def get_snapshot(self) -> WhitelistSnapshot | None:
        try:
            return await self._get_snapshot_tx()
        except SQLAlchemyError as e:
            raise _storage_error("read whitelist snapshot", e) from e

    @with_db_retry(max_attempts=3)
    async def _get_snapshot_tx(self) -> WhitelistSnapshot | None:
        async with self._db.session_scope() as session:
            header = await session.get(WhitelistSnapshotModel, SNAPSHOT_ROW_ID)
            if header is None:
                return None
            result = await session.execute(select(WhitelistEntryModel))
            entries = frozenset(
                WhitelistEntry(artist_id=row.artist_id, display_name=row.display_name)
                for row in result.scalars()
            )
            return WhitelistSnapshot(
                content_hash=header.content_hash,
                entries=entries,
                fetched_at=ensure_utc_aware(header.fetched_at),
            )

    async def commit_snapshot(self, snapshot: WhitelistSnapshot) -> None:
        try:
            await self._commit_snapshot_tx(snapshot)
        except SQLAlchemyError as e:
            raise _storage_error("commit whitelist snapshot", e) from e
        logger.info(
            "whitelist.snapshot.committed",
            extra={
                "content_hash": snapshot.content_hash,
                "artist_count": len(snapshot.entries),
            },
        )

    @with_db_retry(max_attempts=3)
    async def _commit_snapshot_tx(self, snapshot: WhitelistSnapshot) -> None:
        async with self._db.session_scope() as session:
            await self._replace_snapshot(session, snapshot)

    async def _replace_snapshot(
        self, session: AsyncSession, snapshot: WhitelistSnapshot
    ) -> None:
        """Swap header and entries inside the caller's transaction."""
        await session.execute(delete(WhitelistEntryModel))
        await session.execute(delete(WhitelistSnapshotModel))
        await session.execute(
            insert(WhitelistSnapshotModel).values(
                id=SNAPSHOT_ROW_ID,
                content_hash=snapshot.content_hash,
                fetched_at=snapshot.fetched_at,
                artist_count=len(snapshot.entries),
            )
        )
        if snapshot.entries:
            await session.execute(
                insert(WhitelistEntryModel),
                [
                    {"artist_id": entry.artist_id, "display_name": entry.display_name}
                    for entry in snapshot.entries
                ],
            )

    async def list_entries(self) -> list[WhitelistEntry]:
        try:
            return await self._list_entries_tx()
        except SQLAlchemyError as e:
            raise _storage_error("list whitelist entries", e) from e

    @with_db_retry(max_attempts=3)
    async def _list_entries_tx(self) -> list[WhitelistEntry]:
        async with self._db.session_scope() as session:
            result = await session.execute(
                select(WhitelistEntryModel).order_by(
                    WhitelistEntryModel.display_name, WhitelistEntryModel.artist_id
                )
            )
            return [
                WhitelistEntry(artist_id=row.artist_id, display_name=row.display_name)
                for row in result.scalars()
            ]

    # -------------------------------------------------------------------------
    # Catalog lookup
    # -------------------------------------------------------------------------

    async def find_entities_by_artist(self, artist_id: str) -> list[CatalogEntityRef]:
        try:
            return await self._find_entities_by_artist_tx(artist_id)
        except SQLAlchemyError as e:
            raise _storage_error(f"look up entities of artist {artist_id}", e) from e

    @with_db_retry(max_attempts=3)
    async def _find_entities_by_artist_tx(self, artist_id: str) -> list[CatalogEntityRef]:
        refs: list[CatalogEntityRef] = []
        async with self._db.session_scope() as session:
            for mapping, entity_column, kind in self._CREDIT_TABLES:
                entity_col = getattr(mapping, entity_column)
                credited = select(entity_col).where(mapping.artist_id == artist_id)
                # Second half of the query pulls ALL credits of those entities, not just
                # the one we searched for.
                result = await session.execute(
                    select(entity_col, mapping.artist_id).where(entity_col.in_(credited))
                )
                credits: dict[str, set[str]] = defaultdict(set)
                for entity_id, credited_artist in result.all():
                    credits[entity_id].add(credited_artist)
                refs.extend(
                    CatalogEntityRef(
                        kind=kind, entity_id=entity_id, artist_ids=frozenset(artists)
                    )
                    for entity_id, artists in sorted(credits.items())
                )
        return refs

    # -------------------------------------------------------------------------
    # Cascade
    # -------------------------------------------------------------------------

    async def delete_cascade(
        self, plan: DeletionPlan, snapshot: WhitelistSnapshot | None = None
    ) -> CleanupReport:
        try:
            report = await self._delete_cascade_tx(plan, snapshot)
        except SQLAlchemyError as e:
            raise _storage_error("apply deletion plan", e) from e
        logger.info(
            "whitelist.cascade.applied",
            extra={
                **report.to_dict(),
                "removed_artists": len(plan.removed_artist_ids),
                "snapshot_committed": snapshot is not None,
            },
        )
        return report

    # Listen up, ORDER MATTERS here! Candidate songs go first (their playlist_tracks and credit
    # rows, then the rows), so every track still pointing at a purged album afterwards is a
    # retained one and can be unlinked without an exclusion list. Then albums and playlists, then
    # artist rows nobody references anymore. With foreign keys ON, getting it wrong fails loudly
    # instead of leaving dangling rows.
    @with_db_retry(max_attempts=3)
    async def _delete_cascade_tx(
        self, plan: DeletionPlan, snapshot: WhitelistSnapshot | None
    ) -> CleanupReport:
        report = CleanupReport()
        songs = plan.candidate_song_ids
        albums = plan.candidate_album_ids
        playlists = plan.candidate_playlist_ids

        async with self._db.session_scope() as session:
            for batch in _chunked(songs):
                result = await session.execute(
                    delete(PlaylistTrackModel).where(PlaylistTrackModel.track_id.in_(batch))
                )
                report.detached_mappings += result.rowcount or 0
                result = await session.execute(
                    delete(TrackArtistModel).where(TrackArtistModel.track_id.in_(batch))
                )
                report.detached_mappings += result.rowcount or 0
                result = await session.execute(
                    delete(TrackModel).where(TrackModel.id.in_(batch))
                )
                report.deleted_songs += result.rowcount or 0

            for batch in _chunked(playlists):
                result = await session.execute(
                    delete(PlaylistTrackModel).where(
                        PlaylistTrackModel.playlist_id.in_(batch)
                    )
                )
                report.detached_mappings += result.rowcount or 0
                result = await session.execute(
                    delete(PlaylistArtistModel).where(
                        PlaylistArtistModel.playlist_id.in_(batch)
                    )
                )
                report.detached_mappings += result.rowcount or 0

            for batch in _chunked(albums):
                result = await session.execute(
                    delete(AlbumArtistModel).where(AlbumArtistModel.album_id.in_(batch))
                )
                report.detached_mappings += result.rowcount or 0
                # Candidate songs are gone already, whatever still points here is retained
                # and just loses the album link.
                result = await session.execute(
                    update(TrackModel)
                    .where(TrackModel.album_id.in_(batch))
                    .values(album_id=None)
                    .execution_options(synchronize_session=False)
                )
                report.detached_mappings += result.rowcount or 0

            for batch in _chunked(albums):
                result = await session.execute(
                    delete(AlbumModel).where(AlbumModel.id.in_(batch))
                )
                report.deleted_albums += result.rowcount or 0
            for batch in _chunked(playlists):
                result = await session.execute(
                    delete(PlaylistModel).where(PlaylistModel.id.in_(batch))
                )
                report.deleted_playlists += result.rowcount or 0

            # Only artists with no credit left anywhere; a retained entity keeps its artist row.
            for batch in _chunked(plan.orphan_artist_ids):
                result = await session.execute(
                    delete(ArtistModel).where(
                        ArtistModel.id.in_(batch),
                        ~exists().where(TrackArtistModel.artist_id == ArtistModel.id),
                        ~exists().where(AlbumArtistModel.artist_id == ArtistModel.id),
                        ~exists().where(PlaylistArtistModel.artist_id == ArtistModel.id),
                    )
                    .execution_options(synchronize_session=False)
                )
                report.deleted_artists += result.rowcount or 0

            if snapshot is not None:
                await self._replace_snapshot(session, snapshot)

        return report


__all__ = ["SqlAlchemyWhitelistStorage"]
