"""Application services."""

from soulgate.application.services.cascade_cleanup_service import CascadeCleanupService
from soulgate.application.services.sync_progress import (
    SyncProgressPublisher,
    SyncSubscription,
)
from soulgate.application.services.whitelist_diff import diff

__all__ = [
    "CascadeCleanupService",
    "SyncProgressPublisher",
    "SyncSubscription",
    "diff",
]
