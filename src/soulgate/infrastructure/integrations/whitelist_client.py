"""HTTP client for the published artist whitelist."""

import hashlib
import json
import logging
from collections.abc import Iterable

import httpx
from pydantic import BaseModel, Field, ValidationError

from soulgate import __version__
from soulgate.config.settings import WhitelistSettings
from soulgate.domain.entities import RemotePayload, WhitelistEntry
from soulgate.domain.exceptions import ConfigurationError, FetchError, FetchErrorKind
from soulgate.domain.ports import IWhitelistFetcher

logger = logging.getLogger(__name__)


class WhitelistArtistDTO(BaseModel):
    """One artist as published by the remote source."""

    id: str = Field(min_length=1)
    name: str = ""


class WhitelistDocumentDTO(BaseModel):
    """The published whitelist document."""

    hash: str = Field(min_length=1)
    artists: list[WhitelistArtistDTO] = Field(default_factory=list)


def compute_content_hash(entries: Iterable[WhitelistEntry]) -> str:
    """Compute the canonical content hash of a whitelist.

    SHA-256 hex digest over compact JSON of ``[{"id", "name"}, ...]`` sorted by id,
    UTF-8 encoded. Publishers use the same recipe when verify_hash is enabled.
    """
    canonical = [
        {"id": entry.artist_id, "name": entry.display_name}
        for entry in sorted(entries, key=lambda e: e.artist_id)
    ]
    serialized = json.dumps(canonical, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


# Hey future me, this client does ONE GET and NO retries. Retrying is the sync worker's call
# (it knows whether we're at startup with a deadline or in the lazy background loop). Every
# failure leaves here as FetchError with a kind, never a raw httpx exception.
class WhitelistClient(IWhitelistFetcher):
    """Fetches the artist whitelist over HTTP."""

    def __init__(
        self,
        settings: WhitelistSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the whitelist client.

        Args:
            settings: Whitelist configuration settings
            client: Optional pre-built httpx client (tests, shared pools)

        Raises:
            ConfigurationError: If no whitelist URL is configured
        """
        if settings.url is None:
            raise ConfigurationError("WHITELIST__URL is not configured")
        self.settings = settings
        self._url = str(settings.url)
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "User-Agent": f"SoulGate/{__version__}",
                    "Accept": "application/json",
                },
                timeout=self.settings.request_timeout_seconds,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client (only if we created it)."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def fetch(self) -> RemotePayload:
        """Fetch and validate the remote whitelist.

        Raises:
            FetchError: TIMEOUT, NETWORK (connect errors, non-2xx) or MALFORMED
        """
        client = await self._get_client()
        try:
            response = await client.get(self._url)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise FetchError(
                FetchErrorKind.TIMEOUT, f"Whitelist request timed out: {e}"
            ) from e
        except httpx.HTTPStatusError as e:
            raise FetchError(
                FetchErrorKind.NETWORK,
                f"Whitelist source returned HTTP {e.response.status_code}",
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                FetchErrorKind.NETWORK, f"Whitelist request failed: {e}"
            ) from e

        try:
            document = WhitelistDocumentDTO.model_validate_json(response.content)
        except ValidationError as e:
            raise FetchError(
                FetchErrorKind.MALFORMED,
                f"Whitelist payload is invalid ({e.error_count()} errors)",
            ) from e

        payload = self._to_payload(document)
        logger.debug(
            "whitelist.fetch.received",
            extra={"content_hash": payload.content_hash, "artists": len(payload.entries)},
        )
        return payload

    def _to_payload(self, document: WhitelistDocumentDTO) -> RemotePayload:
        content_hash = document.hash.strip()
        if not content_hash:
            raise FetchError(FetchErrorKind.MALFORMED, "Whitelist payload has an empty hash")

        entries: dict[str, WhitelistEntry] = {}
        duplicates = 0
        for artist in document.artists:
            if artist.id in entries:
                # First occurrence wins.
                duplicates += 1
                continue
            entries[artist.id] = WhitelistEntry(
                artist_id=artist.id, display_name=artist.name or artist.id
            )
        if duplicates:
            logger.warning(
                "whitelist.fetch.duplicate_artists",
                extra={"duplicates": duplicates, "content_hash": content_hash},
            )

        if self.settings.verify_hash:
            expected = compute_content_hash(entries.values())
            if expected != content_hash:
                raise FetchError(
                    FetchErrorKind.MALFORMED,
                    f"Whitelist hash mismatch: published {content_hash}, computed {expected}",
                )

        return RemotePayload(content_hash=content_hash, entries=frozenset(entries.values()))
