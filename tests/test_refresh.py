"""Tests for cache refresh and provider-side merges."""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from genealogy_sync.cache.provider_cache import ProviderCache
from genealogy_sync.config import SyncConfig
from genealogy_sync.errors import PersonNotFoundError, ProviderFetchError
from genealogy_sync.identity.identity_map import IdentityMap
from genealogy_sync.models import Provider, ScrapedPersonData
from genealogy_sync.net import ProviderPacer
from genealogy_sync.providers.base import FetchResult
from genealogy_sync.refresh.redirect import apply_redirect
from genealogy_sync.refresh.refresher import ProviderRefresher

from helpers import make_entry

FS = Provider.FAMILYSEARCH


class StubFetcher:
    """Serves canned persons; ``merged`` maps a requested id to its survivor."""

    provider = FS

    def __init__(self, names: dict[str, str], merged: dict[str, str] | None = None) -> None:
        self.names = names
        self.merged = merged or {}
        self.calls: list[str] = []

    async def fetch(self, external_id: str) -> FetchResult:
        self.calls.append(external_id)
        current = self.merged.get(external_id, external_id)
        if current not in self.names:
            raise PersonNotFoundError(FS.value, external_id, status_code=404)
        return FetchResult(
            requested_id=external_id,
            external_id=current,
            data=ScrapedPersonData(external_id=current, name=self.names[current]),
            source_url=f"https://www.familysearch.org/tree/person/details/{current}",
        )

    async def aclose(self) -> None:
        pass


async def no_sleep(seconds: float) -> None:
    pass


def make_refresher(config: SyncConfig, cache: ProviderCache, identity_map: IdentityMap, fetcher) -> ProviderRefresher:
    return ProviderRefresher(
        cache,
        identity_map,
        {FS: fetcher},
        pacers={FS: ProviderPacer(config.rate_limit(FS), sleep=no_sleep)},
        config=config,
    )


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_writes_cache(self, config, cache: ProviderCache, identity_map: IdentityMap):
        identity_map.register("p1", FS, "KWCB-P1")
        refresher = make_refresher(config, cache, identity_map, StubFetcher({"KWCB-P1": "John Smith"}))

        entry = await refresher.refresh(FS, "KWCB-P1")

        assert entry.person_id == "p1"
        assert entry.source_url.endswith("/KWCB-P1")
        stored = cache.get(FS, "KWCB-P1")
        assert stored.scraped_data.name == "John Smith"
        assert stored.person_id == "p1"

    @pytest.mark.asyncio
    async def test_unsupported_provider(self, config, cache: ProviderCache, identity_map: IdentityMap):
        refresher = make_refresher(config, cache, identity_map, StubFetcher({}))
        assert not refresher.supports(Provider.WIKITREE)
        with pytest.raises(ProviderFetchError):
            await refresher.refresh(Provider.WIKITREE, "Smith-1")

    @pytest.mark.asyncio
    async def test_fetch_error_leaves_cache_untouched(self, config, cache: ProviderCache, identity_map: IdentityMap):
        old = make_entry(FS, "KWCB-P1", name="Old Name")
        cache.save(old)
        refresher = make_refresher(config, cache, identity_map, StubFetcher({}))

        with pytest.raises(PersonNotFoundError):
            await refresher.refresh(FS, "KWCB-P1")
        assert cache.get(FS, "KWCB-P1").scraped_data.name == "Old Name"

    @pytest.mark.asyncio
    async def test_ensure_cached_respects_staleness(self, config, cache: ProviderCache, identity_map: IdentityMap):
        fetcher = StubFetcher({"A": "Fresh", "B": "Refetched"})
        refresher = make_refresher(config, cache, identity_map, fetcher)
        cache.save(make_entry(FS, "A", name="Cached"))
        cache.save(make_entry(FS, "B", name="Old", scraped_at=datetime.now(UTC) - timedelta(days=90)))

        entry, fetched = await refresher.ensure_cached(FS, "A")
        assert (entry.scraped_data.name, fetched) == ("Cached", False)

        entry, fetched = await refresher.ensure_cached(FS, "B")
        assert (entry.scraped_data.name, fetched) == ("Refetched", True)

        entry, fetched = await refresher.ensure_cached(FS, "A", max_age_days=0)
        assert fetched
        assert fetcher.calls == ["B", "A"]

    @pytest.mark.asyncio
    async def test_fetch_display_name(self, config, cache: ProviderCache, identity_map: IdentityMap):
        fetcher = StubFetcher({"F": "William Smith"})
        refresher = make_refresher(config, cache, identity_map, fetcher)
        cache.save(make_entry(FS, "C", name="Cached Name"))

        assert await refresher.fetch_display_name(FS, "C") == "Cached Name"
        assert await refresher.fetch_display_name(FS, "F") == "William Smith"
        assert cache.exists(FS, "F")
        assert await refresher.fetch_display_name(FS, "missing") is None
        assert await refresher.fetch_display_name(Provider.WIKITREE, "Smith-1") is None
        assert fetcher.calls == ["F", "missing"]


class TestRedirect:
    @pytest.mark.asyncio
    async def test_merge_moves_cache_and_mapping(self, config, cache: ProviderCache, identity_map: IdentityMap):
        identity_map.register("p1", FS, "OLD-1", url="https://example.org/old", confidence=0.8)
        cache.save(make_entry(FS, "OLD-1", person_id="p1", name="Before Merge"))
        fetcher = StubFetcher({"NEW-1": "After Merge"}, merged={"OLD-1": "NEW-1"})
        refresher = make_refresher(config, cache, identity_map, fetcher)

        entry = await refresher.refresh(FS, "OLD-1")

        assert entry.external_id == "NEW-1"
        assert identity_map.resolve("OLD-1", FS) is None
        assert identity_map.resolve("NEW-1", FS) == "p1"
        assert identity_map.get_external_id("p1", FS) == "NEW-1"
        assert identity_map.get(FS, "NEW-1").confidence == 0.8
        assert not cache.exists(FS, "OLD-1")
        assert not cache.path_for(FS, "OLD-1").exists()
        assert cache.get(FS, "NEW-1").person_id == "p1"

    @pytest.mark.asyncio
    async def test_merge_without_owner_moves_cache_only(self, config, cache: ProviderCache, identity_map: IdentityMap):
        cache.save(make_entry(FS, "OLD-2", name="Orphan"))
        fetcher = StubFetcher({"NEW-2": "Orphan"}, merged={"OLD-2": "NEW-2"})
        refresher = make_refresher(config, cache, identity_map, fetcher)

        await refresher.refresh(FS, "OLD-2")

        assert cache.exists(FS, "NEW-2")
        assert not cache.exists(FS, "OLD-2")
        assert identity_map.all() == []

    def test_old_url_kept_when_entry_has_none(self, cache: ProviderCache, identity_map: IdentityMap):
        identity_map.register("p2", FS, "OLD-3", url="https://example.org/p2")
        result = apply_redirect(cache, identity_map, FS, "OLD-3", make_entry(FS, "NEW-3"))

        assert result.person_id == "p2"
        assert result.url == "https://example.org/p2"
        assert cache.get(FS, "NEW-3").person_id == "p2"

    def test_same_id_rejected(self, cache: ProviderCache, identity_map: IdentityMap):
        with pytest.raises(ValueError):
            apply_redirect(cache, identity_map, FS, "SAME", make_entry(FS, "SAME"))
