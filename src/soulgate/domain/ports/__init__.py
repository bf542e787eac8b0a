"""Domain ports (interfaces) for dependency inversion."""

from abc import ABC, abstractmethod

from soulgate.domain.entities import (
    CatalogEntityRef,
    CleanupReport,
    DeletionPlan,
    RemotePayload,
    WhitelistEntry,
    WhitelistSnapshot,
)


# Hey future me, IWhitelistFetcher is a PORT! The HTTP implementation lives in the
# infrastructure layer (WhitelistClient). Implementations raise FetchError and NEVER retry -
# retry policy belongs to the sync worker.
class IWhitelistFetcher(ABC):
    """Retrieves the published artist whitelist."""

    @abstractmethod
    async def fetch(self) -> RemotePayload:
        """Fetch the remote whitelist.

        Raises:
            FetchError: On network failure, timeout or malformed payload
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        pass


# Yo, this is the ONLY way the sync engine touches persisted state. Every method is its own
# transaction. delete_cascade() optionally swaps the snapshot inside the SAME transaction, so
# a crash between "purge" and "remember what we purged for" can't happen.
class IWhitelistStorage(ABC):
    """Storage contract for the whitelist snapshot and catalog entities."""

    @abstractmethod
    async def get_snapshot(self) -> WhitelistSnapshot | None:
        """Get the persisted snapshot, None before the first successful sync."""
        pass

    @abstractmethod
    async def commit_snapshot(self, snapshot: WhitelistSnapshot) -> None:
        """Atomically replace the persisted snapshot.

        Raises:
            StorageError: If the transaction failed (nothing was changed)
        """
        pass

    @abstractmethod
    async def find_entities_by_artist(self, artist_id: str) -> list[CatalogEntityRef]:
        """Find all songs, albums and playlists credited to an artist.

        Each reference carries the entity's complete artist credit set.
        """
        pass

    @abstractmethod
    async def delete_cascade(
        self, plan: DeletionPlan, snapshot: WhitelistSnapshot | None = None
    ) -> CleanupReport:
        """Apply a deletion plan in one transaction.

        Args:
            plan: Entities to delete
            snapshot: Optional snapshot to commit in the same transaction

        Raises:
            StorageError: If anything failed (everything was rolled back)
        """
        pass

    @abstractmethod
    async def list_entries(self) -> list[WhitelistEntry]:
        """List whitelisted artists of the persisted snapshot, sorted by name."""
        pass


__all__ = ["IWhitelistFetcher", "IWhitelistStorage"]
