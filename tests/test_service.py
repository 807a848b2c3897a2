"""Tests for the envelope-returning facade."""
from __future__ import annotations

import json
import random
from datetime import UTC, datetime, timedelta

import pytest

from genealogy_sync.config import SyncConfig
from genealogy_sync.models import ComparisonStatus, ProgressEventType, Provider, ScrapedPersonData
from genealogy_sync.net import ProviderPacer
from genealogy_sync.providers.base import FetchResult
from genealogy_sync.service import ReconciliationService, default_fetchers

from helpers import make_entry

FS = Provider.FAMILYSEARCH


class OneShotFetcher:
    provider = FS
    is_authenticated = True

    def __init__(self) -> None:
        self.closed = False

    async def fetch(self, external_id: str) -> FetchResult:
        return FetchResult(
            requested_id=external_id,
            external_id=external_id,
            data=ScrapedPersonData(external_id=external_id, name="John Smith"),
        )

    async def aclose(self) -> None:
        self.closed = True


async def no_sleep(seconds: float) -> None:
    pass


@pytest.fixture()
def fetcher() -> OneShotFetcher:
    return OneShotFetcher()


@pytest.fixture()
def service(family, config: SyncConfig, fetcher: OneShotFetcher) -> ReconciliationService:
    return ReconciliationService(
        config,
        fetchers={FS: fetcher},
        pacers={FS: ProviderPacer(config.rate_limit(FS), sleep=no_sleep)},
        sleep=no_sleep,
        rng=random.Random(1),
    )


class TestEnvelopes:
    @pytest.mark.asyncio
    async def test_compare(self, service: ReconciliationService):
        result = await service.compare_across_platforms("main", "p1")
        assert result.success
        assert result.error is None
        assert result.data.person_id == "p1"

    @pytest.mark.asyncio
    async def test_compare_failures(self, service: ReconciliationService):
        missing_db = await service.compare_across_platforms("nope", "p1")
        assert not missing_db.success
        assert missing_db.data is None
        assert "nope" in missing_db.error

        missing_person = await service.compare_across_platforms("main", "nobody")
        assert not missing_person.success
        assert "nobody" in missing_person.error

    @pytest.mark.asyncio
    async def test_refresh_person(self, service: ReconciliationService):
        unlinked = await service.refresh_person("main", "p1", FS)
        assert not unlinked.success

        service.identity_map.register("p1", FS, "KWCB-P1")
        result = await service.refresh_person("main", "p1", FS)
        assert result.success
        assert result.data.scraped_data.name == "John Smith"
        assert service.cache.exists(FS, "KWCB-P1")

    def test_suggest_and_apply_parent_link(self, service: ReconciliationService):
        service.identity_map.register("p1", FS, "KWCB-P1")
        service.cache.save(
            make_entry(FS, "KWCB-P1", father_external_id="KWCF-W", father_name="William Smith")
        )

        suggested = service.suggest_parent_links("main", "p1", FS)
        assert suggested.success
        [suggestion] = suggested.data.suggestions
        assert suggestion.confidence == 1.0

        applied = service.apply_parent_link("main", suggestion)
        assert applied.success
        assert service.identity_map.resolve("KWCF-W", FS) == "p2"

        again = service.apply_parent_link("main", suggestion.model_copy(update={"local_parent_id": "p3"}))
        assert not again.success
        assert "p2" in again.error

    def test_apply_provider_values(self, service: ReconciliationService):
        result = service.apply_provider_values("main", "nobody", FS, ["name"])
        assert not result.success

        result = service.apply_provider_values("main", "p1", FS, ["name"])
        assert result.success
        assert result.data[0].reason == "not_linked"

    def test_stale_entries(self, service: ReconciliationService):
        service.cache.save(make_entry(FS, "OLD", scraped_at=datetime.now(UTC) - timedelta(days=45)))
        service.cache.save(make_entry(FS, "NEW"))

        result = service.stale_entries(FS)
        assert [e.external_id for e in result.data] == ["OLD"]
        assert service.stale_entries(FS, max_age_days=60).data == []

    def test_bad_provider_is_an_error_envelope(self, service: ReconciliationService):
        result = service.suggest_parent_links("main", "p1", "myheritage")
        assert not result.success

    def test_suggest_ancestor_links(self, service: ReconciliationService):
        service.identity_map.register("p1", FS, "KWCB-P1")
        service.cache.save(make_entry(FS, "KWCB-P1", father_external_id="KWCF-W", mother_external_id="KWCM-M"))

        result = service.suggest_ancestor_links("main", "p1", FS, "full")
        assert result.success
        assert result.data.persons_visited == 7
        assert result.data.total_suggested == 2
        assert service.identity_map.resolve("KWCF-W", FS) is None

        assert not service.suggest_ancestor_links("main", "nobody", FS).success
        assert not service.suggest_ancestor_links("nope", "p1", FS).success
        assert not service.suggest_ancestor_links("main", "p1", FS, -1).success

    @pytest.mark.asyncio
    async def test_refresh_with_bad_provider_is_an_error_envelope(self, service: ReconciliationService):
        result = await service.refresh_person("main", "p1", "myheritage")
        assert not result.success
        assert result.error

    @pytest.mark.asyncio
    async def test_compare_with_malformed_raw_cache_file(self, service: ReconciliationService):
        service.identity_map.register("p1", FS, "K1")
        path = service.cache.path_for(FS, "K1")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"persons": [{"id": "K1", "display": "oops", "facts": ["x"]}]}))

        result = await service.compare_across_platforms("main", "p1")
        assert result.success
        assert result.data.row("name").provider_values[FS].status == ComparisonStatus.MISSING_PROVIDER


class TestSyncFacade:
    @pytest.mark.asyncio
    async def test_run_sync_and_status(self, service: ReconciliationService):
        assert not service.get_status().running
        events = [e async for e in service.run_sync("main", "p1", 1, provider=FS)]
        assert events[-1].type == ProgressEventType.COMPLETED
        assert not service.get_status("main").running
        assert not service.request_cancel(events[-1].operation_id)

    @pytest.mark.asyncio
    async def test_unauthenticated_session_fails_run(self, service: ReconciliationService, fetcher: OneShotFetcher):
        fetcher.is_authenticated = False
        events = [e async for e in service.run_sync("main", "p1", 1, provider=FS)]
        assert [e.type for e in events] == [ProgressEventType.STARTED, ProgressEventType.ERROR]

    @pytest.mark.asyncio
    async def test_aclose_closes_fetchers(self, service: ReconciliationService, fetcher: OneShotFetcher):
        await service.aclose()
        assert fetcher.closed


def test_default_fetchers_need_a_token(tmp_path):
    assert default_fetchers(SyncConfig(data_dir=tmp_path, familysearch_access_token=None)) == {}
    fetchers = default_fetchers(SyncConfig(data_dir=tmp_path, familysearch_access_token="abc"))
    assert list(fetchers) == [FS]
