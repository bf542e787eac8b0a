"""Domain entities."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from soulgate.domain.exceptions import SyncErrorKind


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me, equality and hashing only look at artist_id! The remote list may rename an
# artist ("Beyonce" -> "Beyoncé") and that must NOT show up as remove+add in the diff, or the
# cascade would wipe the whole discography over an accent.
@dataclass(frozen=True)
class WhitelistEntry:
    """A single approved artist from the remote whitelist."""

    artist_id: str
    display_name: str = field(compare=False)


@dataclass(frozen=True)
class RemotePayload:
    """Whitelist document as fetched from the remote source."""

    content_hash: str
    entries: frozenset[WhitelistEntry]

    @property
    def artist_ids(self) -> frozenset[str]:
        return frozenset(entry.artist_id for entry in self.entries)


@dataclass(frozen=True)
class WhitelistSnapshot:
    """The last successfully applied remote whitelist.

    Exactly one snapshot is persisted at a time. It is replaced as a whole on a
    successful sync, never edited in place.
    """

    content_hash: str
    entries: frozenset[WhitelistEntry]
    fetched_at: datetime = field(default_factory=utc_now)

    @property
    def artist_ids(self) -> frozenset[str]:
        return frozenset(entry.artist_id for entry in self.entries)

    @classmethod
    def from_payload(
        cls, payload: RemotePayload, fetched_at: datetime | None = None
    ) -> "WhitelistSnapshot":
        """Build the snapshot that will replace the current one."""
        return cls(
            content_hash=payload.content_hash,
            entries=payload.entries,
            fetched_at=fetched_at or utc_now(),
        )


@dataclass(frozen=True)
class DiffResult:
    """Artist-level difference between the stored snapshot and a new payload."""

    added: frozenset[str] = frozenset()
    removed: frozenset[str] = frozenset()
    unchanged: bool = False

    @property
    def changed_count(self) -> int:
        return len(self.added) + len(self.removed)


class EntityKind(str, Enum):
    """Catalog entity types that carry artist credits."""

    SONG = "song"
    ALBUM = "album"
    PLAYLIST = "playlist"


@dataclass(frozen=True)
class CatalogEntityRef:
    """Reference to a catalog entity plus its COMPLETE artist credit set."""

    kind: EntityKind
    entity_id: str
    artist_ids: frozenset[str] = frozenset()


# Listen up, DeletionPlan is pure data! It is computed BEFORE we touch storage and then applied
# in one transaction. orphan_artist_ids are removed artists whose every credited entity is
# already in the plan - their artist row can go too without breaking a retained credit.
@dataclass(frozen=True)
class DeletionPlan:
    """Cascade to apply for one sync cycle. Never persisted."""

    removed_artist_ids: frozenset[str] = frozenset()
    candidate_song_ids: frozenset[str] = frozenset()
    candidate_album_ids: frozenset[str] = frozenset()
    candidate_playlist_ids: frozenset[str] = frozenset()
    orphan_artist_ids: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (
            self.candidate_song_ids
            or self.candidate_album_ids
            or self.candidate_playlist_ids
            or self.orphan_artist_ids
        )

    @property
    def candidate_count(self) -> int:
        return (
            len(self.candidate_song_ids)
            + len(self.candidate_album_ids)
            + len(self.candidate_playlist_ids)
        )


@dataclass
class CleanupReport:
    """What a cascade actually deleted."""

    deleted_songs: int = 0
    deleted_albums: int = 0
    deleted_playlists: int = 0
    deleted_artists: int = 0
    detached_mappings: int = 0

    @property
    def total_deleted(self) -> int:
        return (
            self.deleted_songs
            + self.deleted_albums
            + self.deleted_playlists
            + self.deleted_artists
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "deleted_songs": self.deleted_songs,
            "deleted_albums": self.deleted_albums,
            "deleted_playlists": self.deleted_playlists,
            "deleted_artists": self.deleted_artists,
            "detached_mappings": self.detached_mappings,
        }


# =============================================================================
# SYNC LIFECYCLE STATE
# Hey future me - ONE of these is "the" state at any time. Only the sync worker creates
# new ones; everybody else reads them via SyncProgressPublisher.
# =============================================================================


class SyncPhase(str, Enum):
    """Phase of a running sync cycle."""

    FETCHING = "fetching"
    DIFFING = "diffing"
    CLEANING = "cleaning"


@dataclass(frozen=True)
class SyncIdle:
    """No cycle has run yet in this process."""

    status: str = field(default="idle", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status}


@dataclass(frozen=True)
class SyncRunning:
    """A cycle is in progress."""

    phase: SyncPhase
    started_at: datetime
    status: str = field(default="running", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "phase": self.phase.value,
            "started_at": self.started_at.isoformat(),
        }


@dataclass(frozen=True)
class SyncSucceeded:
    """Last cycle finished and its snapshot (if any) is committed."""

    at: datetime
    changed_count: int
    status: str = field(default="succeeded", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "at": self.at.isoformat(),
            "changed_count": self.changed_count,
        }


@dataclass(frozen=True)
class SyncFailed:
    """Last cycle failed; the previously persisted state is still in effect."""

    at: datetime
    reason: str
    error: SyncErrorKind
    status: str = field(default="failed", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "at": self.at.isoformat(),
            "reason": self.reason,
            "error": self.error.value,
        }


SyncState = SyncIdle | SyncRunning | SyncSucceeded | SyncFailed


def is_terminal(state: SyncState) -> bool:
    """Check if a state ends a cycle."""
    return isinstance(state, SyncSucceeded | SyncFailed)


__all__ = [
    "CatalogEntityRef",
    "CleanupReport",
    "DeletionPlan",
    "DiffResult",
    "EntityKind",
    "RemotePayload",
    "SyncFailed",
    "SyncIdle",
    "SyncPhase",
    "SyncRunning",
    "SyncState",
    "SyncSucceeded",
    "WhitelistEntry",
    "WhitelistSnapshot",
    "is_terminal",
    "utc_now",
]
