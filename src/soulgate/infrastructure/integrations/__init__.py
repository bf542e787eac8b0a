"""Integrations with external services."""

from soulgate.infrastructure.integrations.whitelist_client import (
    WhitelistClient,
    compute_content_hash,
)

__all__ = ["WhitelistClient", "compute_content_hash"]
