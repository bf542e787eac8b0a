"""Domain exceptions."""

from enum import Enum
from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - raise a specific subclass so callers can
    # catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Example:
        raise ConfigurationError("WHITELIST__URL is not configured")
    """

    pass


class FetchErrorKind(str, Enum):
    """Why retrieving the remote whitelist failed."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"


class FetchError(DomainException):
    """Raised by the whitelist fetcher.

    The fetcher never retries on its own. NETWORK and TIMEOUT are transient
    and may be retried by the caller, MALFORMED means the published document
    itself is broken and retrying won't help.
    """

    def __init__(self, kind: FetchErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        """Check if the failure is transient."""
        return self.kind in (FetchErrorKind.NETWORK, FetchErrorKind.TIMEOUT)


class StorageErrorKind(str, Enum):
    """Why a storage operation failed."""

    TRANSACTION_FAILED = "transaction_failed"
    CONSTRAINT = "constraint"


class StorageError(DomainException):
    """Raised by the storage contract after the transaction was rolled back."""

    def __init__(self, kind: StorageErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class SyncErrorKind(str, Enum):
    """Why a sync cycle failed."""

    FETCH_FAILED = "fetch_failed"
    CLEANUP_FAILED = "cleanup_failed"
    TIMED_OUT = "timed_out"


class SyncError(DomainException):
    """Raised by the blocking startup sync.

    Hey future me - this is a SOFT failure! Startup catches it, logs it and keeps
    going with whatever snapshot is already on disk. The published SyncFailed state
    is what tells the UI the whitelist may be stale.
    """

    def __init__(self, kind: SyncErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


__all__ = [
    "ConfigurationError",
    "DomainException",
    "FetchError",
    "FetchErrorKind",
    "StorageError",
    "StorageErrorKind",
    "SyncError",
    "SyncErrorKind",
]
