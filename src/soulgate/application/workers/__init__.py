"""Background workers."""

from soulgate.application.workers.whitelist_sync_worker import WhitelistSyncWorker

__all__ = ["WhitelistSyncWorker"]
