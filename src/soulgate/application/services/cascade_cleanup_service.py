# Hey future me - this is where content actually gets DELETED, so read this before touching it!
#
# The rule: a song/album/playlist goes away only when NONE of its credited artists survives.
# "Survives" means "is on the new whitelist" when the caller passes it (that's what the sync
# worker always does), otherwise "was not just removed". A co-credited track with one
# whitelisted artist stays. Content with no artist credit at all is never touched here - it
# can't even be found via find_entities_by_artist.
#
# plan() only READS. apply() hands the whole plan to storage which runs it in ONE transaction,
# optionally together with the new snapshot. Deleted content does NOT come back if the artist
# is re-added later.
"""Cascade cleanup of catalog entities credited to removed artists."""

import logging
from collections.abc import Callable, Iterable

from soulgate.domain.entities import (
    CleanupReport,
    DeletionPlan,
    EntityKind,
    WhitelistSnapshot,
)
from soulgate.domain.ports import IWhitelistStorage
from soulgate.infrastructure.observability import log_operation

logger = logging.getLogger(__name__)


class CascadeCleanupService:
    """Plans and applies the cascade for removed artists."""

    def __init__(self, storage: IWhitelistStorage) -> None:
        self._storage = storage

    async def plan(
        self,
        removed: Iterable[str],
        whitelisted: Iterable[str] | None = None,
    ) -> DeletionPlan:
        """Build the deletion plan for a set of removed artists.

        Args:
            removed: Artist ids that left the whitelist
            whitelisted: Artist ids of the new whitelist. When given, an entity
                survives only through one of these; when None, an entity survives
                through any credited artist that was not removed.

        Returns:
            DeletionPlan (possibly empty)

        Raises:
            StorageError: If the catalog lookup failed
        """
        removed_ids = frozenset(removed)
        if not removed_ids:
            return DeletionPlan()

        survives: Callable[[str], bool]
        if whitelisted is not None:
            allowed = frozenset(whitelisted)
            survives = allowed.__contains__
        else:
            survives = lambda artist_id: artist_id not in removed_ids  # noqa: E731

        candidates: dict[EntityKind, set[str]] = {kind: set() for kind in EntityKind}
        orphans: set[str] = set()

        for artist_id in sorted(removed_ids):
            refs = await self._storage.find_entities_by_artist(artist_id)
            retained_any = False
            for ref in refs:
                if ref.artist_ids and not any(survives(a) for a in ref.artist_ids):
                    candidates[ref.kind].add(ref.entity_id)
                else:
                    retained_any = True
            if not retained_any:
                orphans.add(artist_id)

        plan = DeletionPlan(
            removed_artist_ids=removed_ids,
            candidate_song_ids=frozenset(candidates[EntityKind.SONG]),
            candidate_album_ids=frozenset(candidates[EntityKind.ALBUM]),
            candidate_playlist_ids=frozenset(candidates[EntityKind.PLAYLIST]),
            orphan_artist_ids=frozenset(orphans),
        )
        logger.info(
            "whitelist.cascade.planned",
            extra={
                "removed_artists": len(removed_ids),
                "songs": len(plan.candidate_song_ids),
                "albums": len(plan.candidate_album_ids),
                "playlists": len(plan.candidate_playlist_ids),
                "orphan_artists": len(plan.orphan_artist_ids),
            },
        )
        return plan

    async def apply(
        self, plan: DeletionPlan, snapshot: WhitelistSnapshot | None = None
    ) -> CleanupReport:
        """Apply a plan atomically, committing ``snapshot`` in the same transaction.

        Raises:
            StorageError: If the transaction failed; nothing was changed
        """
        if plan.is_empty and snapshot is None:
            return CleanupReport()
        async with log_operation(
            logger,
            "whitelist.cascade.apply",
            candidates=plan.candidate_count,
            with_snapshot=snapshot is not None,
        ) as outcome:
            report = await self._storage.delete_cascade(plan, snapshot)
            outcome.update(report.to_dict())
        return report
