"""Tests for the whitelist HTTP client."""

import httpx
import pytest
from pytest_httpx import HTTPXMock

from soulgate.config.settings import WhitelistSettings
from soulgate.domain.entities import WhitelistEntry
from soulgate.domain.exceptions import ConfigurationError, FetchError, FetchErrorKind
from soulgate.infrastructure.integrations.whitelist_client import (
    WhitelistClient,
    compute_content_hash,
)

URL = "https://whitelist.example.org/artists.json"


@pytest.fixture
def whitelist_settings() -> WhitelistSettings:
    return WhitelistSettings(url=URL, request_timeout_seconds=2)


@pytest.fixture
async def client(whitelist_settings: WhitelistSettings):
    whitelist_client = WhitelistClient(whitelist_settings)
    yield whitelist_client
    await whitelist_client.close()


class TestWhitelistClientInit:
    def test_requires_url(self) -> None:
        with pytest.raises(ConfigurationError):
            WhitelistClient(WhitelistSettings())


class TestFetch:
    async def test_parses_payload(self, client: WhitelistClient, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=URL,
            json={
                "hash": "h1",
                "artists": [{"id": "a1", "name": "Björk"}, {"id": "a2", "name": "Can"}],
            },
        )

        payload = await client.fetch()

        assert payload.content_hash == "h1"
        assert payload.artist_ids == frozenset({"a1", "a2"})
        names = {entry.artist_id: entry.display_name for entry in payload.entries}
        assert names["a1"] == "Björk"

    async def test_empty_artist_list_is_valid(
        self, client: WhitelistClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=URL, json={"hash": "h0", "artists": []})

        payload = await client.fetch()

        assert payload.entries == frozenset()

    async def test_duplicate_ids_keep_first_occurrence(
        self, client: WhitelistClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            url=URL,
            json={
                "hash": "h1",
                "artists": [{"id": "a1", "name": "First"}, {"id": "a1", "name": "Second"}],
            },
        )

        payload = await client.fetch()

        assert len(payload.entries) == 1
        assert next(iter(payload.entries)).display_name == "First"

    async def test_missing_name_falls_back_to_id(
        self, client: WhitelistClient, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(url=URL, json={"hash": "h1", "artists": [{"id": "a1"}]})

        payload = await client.fetch()

        assert next(iter(payload.entries)).display_name == "a1"


class TestFetchErrors:
    async def test_timeout(self, client: WhitelistClient, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ReadTimeout("too slow"), url=URL)

        with pytest.raises(FetchError) as exc_info:
            await client.fetch()

        assert exc_info.value.kind is FetchErrorKind.TIMEOUT
        assert exc_info.value.retryable

    async def test_connect_error(self, client: WhitelistClient, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("refused"), url=URL)

        with pytest.raises(FetchError) as exc_info:
            await client.fetch()

        assert exc_info.value.kind is FetchErrorKind.NETWORK

    async def test_server_error(self, client: WhitelistClient, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=URL, status_code=503)

        with pytest.raises(FetchError) as exc_info:
            await client.fetch()

        assert exc_info.value.kind is FetchErrorKind.NETWORK
        assert "503" in exc_info.value.message

    async def test_invalid_json(self, client: WhitelistClient, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=URL, content=b"<html>maintenance</html>")

        with pytest.raises(FetchError) as exc_info:
            await client.fetch()

        assert exc_info.value.kind is FetchErrorKind.MALFORMED
        assert not exc_info.value.retryable

    async def test_schema_violation(self, client: WhitelistClient, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=URL, json={"artists": [{"name": "no id"}]})

        with pytest.raises(FetchError) as exc_info:
            await client.fetch()

        assert exc_info.value.kind is FetchErrorKind.MALFORMED

    async def test_blank_hash(self, client: WhitelistClient, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=URL, json={"hash": "   ", "artists": []})

        with pytest.raises(FetchError) as exc_info:
            await client.fetch()

        assert exc_info.value.kind is FetchErrorKind.MALFORMED


class TestHashVerification:
    """Optional integrity check of the published hash."""

    def test_hash_ignores_order(self) -> None:
        entries = [WhitelistEntry("b", "B"), WhitelistEntry("a", "A")]
        assert compute_content_hash(entries) == compute_content_hash(reversed(entries))

    def test_hash_covers_names(self) -> None:
        assert compute_content_hash([WhitelistEntry("a", "A")]) != compute_content_hash(
            [WhitelistEntry("a", "Renamed")]
        )

    async def test_matching_hash_accepted(self, httpx_mock: HTTPXMock) -> None:
        artists = [WhitelistEntry("a1", "One"), WhitelistEntry("a2", "Two")]
        published = compute_content_hash(artists)
        httpx_mock.add_response(
            url=URL,
            json={
                "hash": published,
                "artists": [{"id": e.artist_id, "name": e.display_name} for e in artists],
            },
        )
        client = WhitelistClient(WhitelistSettings(url=URL, verify_hash=True))

        payload = await client.fetch()
        await client.close()

        assert payload.content_hash == published

    async def test_mismatching_hash_rejected(self, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=URL, json={"hash": "not-the-hash", "artists": [{"id": "a1", "name": "One"}]}
        )
        client = WhitelistClient(WhitelistSettings(url=URL, verify_hash=True))

        with pytest.raises(FetchError) as exc_info:
            await client.fetch()
        await client.close()

        assert exc_info.value.kind is FetchErrorKind.MALFORMED


class TestClose:
    async def test_does_not_close_injected_client(self) -> None:
        shared = httpx.AsyncClient()
        client = WhitelistClient(WhitelistSettings(url=URL), client=shared)

        await client.close()

        assert not shared.is_closed
        await shared.aclose()
