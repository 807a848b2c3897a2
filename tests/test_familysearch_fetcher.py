"""Tests for the FamilySearch fetcher against a mocked HTTP transport."""
from __future__ import annotations

import httpx
import pytest
from tenacity import wait_none

from genealogy_sync.errors import NotAuthenticatedError, PersonNotFoundError, ProviderFetchError
from genealogy_sync.net import CircuitBreaker
from genealogy_sync.providers.familysearch import FamilySearchFetcher

from helpers import gedcomx_person

BASE_URL = "https://api.familysearch.test"


def make_fetcher(handler, token: str | None = "token-123", breaker: CircuitBreaker | None = None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FamilySearchFetcher(
        access_token=token,
        base_url=BASE_URL,
        client=client,
        breaker=breaker or CircuitBreaker(),
    )


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(FamilySearchFetcher._get.retry, "wait", wait_none())


class TestFetch:
    @pytest.mark.asyncio
    async def test_success(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json=gedcomx_person(
                    "KWCB-P1", "John Smith", birth_date="29 August 1933", parents=("KWCF-W", "KWCM-M")
                ),
            )

        async with make_fetcher(handler) as fetcher:
            result = await fetcher.fetch("KWCB-P1")

        assert seen[0].url.path == "/platform/tree/persons/KWCB-P1"
        assert seen[0].headers["Authorization"] == "Bearer token-123"
        assert not result.redirected
        assert result.data.name == "John Smith"
        assert result.data.birth.date == "29 August 1933"
        assert result.data.father_external_id == "KWCF-W"
        assert result.data.mother_external_id == "KWCM-M"
        assert result.source_url.endswith("/KWCB-P1")

    @pytest.mark.asyncio
    async def test_merged_person_is_reported_as_redirect(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/OLD-1"):
                return httpx.Response(301, headers={"Location": f"{BASE_URL}/platform/tree/persons/NEW-1"})
            return httpx.Response(200, json=gedcomx_person("NEW-1", "Merged Person"))

        async with make_fetcher(handler) as fetcher:
            result = await fetcher.fetch("OLD-1")

        assert result.redirected
        assert result.requested_id == "OLD-1"
        assert result.external_id == "NEW-1"
        assert result.data.external_id == "NEW-1"

    @pytest.mark.asyncio
    async def test_missing_token(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        fetcher = make_fetcher(handler, token="")
        with pytest.raises(NotAuthenticatedError):
            await fetcher.fetch("KWCB-P1")
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_expired_token(self):
        fetcher = make_fetcher(lambda request: httpx.Response(401))
        with pytest.raises(NotAuthenticatedError) as exc_info:
            await fetcher.fetch("KWCB-P1")
        assert exc_info.value.status_code == 401
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_not_found(self):
        fetcher = make_fetcher(lambda request: httpx.Response(404))
        with pytest.raises(PersonNotFoundError):
            await fetcher.fetch("KWCB-GONE")
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_empty_payload(self):
        fetcher = make_fetcher(lambda request: httpx.Response(200, json={"persons": []}))
        with pytest.raises(PersonNotFoundError):
            await fetcher.fetch("KWCB-P1")
        await fetcher.aclose()


class TestTransientFailures:
    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=gedcomx_person("KWCB-P1", "John Smith"))

        async with make_fetcher(handler) as fetcher:
            result = await fetcher.fetch("KWCB-P1")

        assert len(calls) == 3
        assert result.data.name == "John Smith"

    @pytest.mark.asyncio
    async def test_gives_up_and_opens_breaker(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(500)

        breaker = CircuitBreaker(max_failures=2)
        fetcher = make_fetcher(handler, breaker=breaker)

        for _ in range(2):
            with pytest.raises(ProviderFetchError) as exc_info:
                await fetcher.fetch("KWCB-P1")
            assert exc_info.value.status_code == 500
        assert len(calls) == 6
        assert breaker.is_open

        with pytest.raises(ProviderFetchError, match="circuit open"):
            await fetcher.fetch("KWCB-P1")
        assert len(calls) == 6
        await fetcher.aclose()
