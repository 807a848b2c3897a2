"""Tests for per-person comparison reports."""
from __future__ import annotations

import json

import pytest

from genealogy_sync.cache.provider_cache import ProviderCache
from genealogy_sync.comparison.builder import ComparisonBuilder
from genealogy_sync.comparison.parent_names import ParentNameResolver
from genealogy_sync.errors import PersonMissingError
from genealogy_sync.identity.identity_map import IdentityMap
from genealogy_sync.models import ComparisonStatus, Provider, VitalEvent
from genealogy_sync.storage.sqlite_store import SQLiteLocalStore

from helpers import make_entry


@pytest.fixture()
def builder(family: SQLiteLocalStore, identity_map: IdentityMap, cache: ProviderCache) -> ComparisonBuilder:
    return ComparisonBuilder(family, identity_map, cache, db_id="main")


def status(report, field: str, provider: Provider) -> ComparisonStatus:
    return report.row(field).provider_values[provider].status


class TestReport:
    @pytest.mark.asyncio
    async def test_unknown_person(self, builder: ComparisonBuilder):
        with pytest.raises(PersonMissingError):
            await builder.build("nobody")

    @pytest.mark.asyncio
    async def test_unlinked_person_counts_nothing(self, builder: ComparisonBuilder):
        report = await builder.build("p1")

        assert report.summary.total_fields == 11
        assert report.summary.matching_fields == 0
        assert report.summary.differing_fields == 0
        assert report.summary.missing_on_providers == {}
        assert [p.provider for p in report.providers] == list(Provider)
        assert not any(p.is_linked for p in report.providers)

    @pytest.mark.asyncio
    async def test_field_statuses(self, builder: ComparisonBuilder, identity_map: IdentityMap, cache: ProviderCache):
        identity_map.register("p1", Provider.FAMILYSEARCH, "KWCB-P1")
        cache.save(
            make_entry(
                Provider.FAMILYSEARCH,
                "KWCB-P1",
                name="John Smith",
                gender="Male",
                birth=VitalEvent(date="29 August 1933", place="Canada"),
                death=VitalEvent(date="1 Jan 2001", place="Vancouver, British Columbia, Canada"),
                alternate_names=["johnny smith", "JON SMITH"],
                occupations=["Farmer", "Mayor"],
                children_count=0,
            )
        )
        report = await builder.build("p1")
        fs = Provider.FAMILYSEARCH

        assert status(report, "name", fs) == ComparisonStatus.MATCH
        assert status(report, "gender", fs) == ComparisonStatus.MATCH
        assert status(report, "birth_date", fs) == ComparisonStatus.MATCH
        # Local "Regina, Saskatchewan, Canada" is more specific than provider "Canada"
        assert status(report, "birth_place", fs) == ComparisonStatus.MATCH
        assert status(report, "death_date", fs) == ComparisonStatus.MISSING_LOCAL
        assert status(report, "alternate_names", fs) == ComparisonStatus.MATCH
        assert status(report, "occupations", fs) == ComparisonStatus.DIFFERENT
        assert status(report, "father_name", fs) == ComparisonStatus.MISSING_PROVIDER
        assert status(report, "children_count", fs) == ComparisonStatus.MATCH

        row = report.row("birth_date")
        assert row.local_value == "29 AUG 1933"
        assert row.provider_values[fs].value == "29 August 1933"
        assert row.provider_values[fs].last_scraped_at is not None

    @pytest.mark.asyncio
    async def test_summary_prefers_disagreement(
        self, builder: ComparisonBuilder, identity_map: IdentityMap, cache: ProviderCache
    ):
        identity_map.register("p1", Provider.FAMILYSEARCH, "KWCB-P1")
        identity_map.register("p1", Provider.WIKITREE, "Smith-1")
        cache.save(make_entry(Provider.FAMILYSEARCH, "KWCB-P1", name="John Smith", gender="male"))
        cache.save(make_entry(Provider.WIKITREE, "Smith-1", name="Jack Smithers", gender="male"))

        report = await builder.build("p1")
        summary = report.summary

        # name: one match, one different -> differing; gender: both match -> matching
        assert status(report, "name", Provider.WIKITREE) == ComparisonStatus.DIFFERENT
        assert summary.differing_fields >= 1
        assert summary.matching_fields >= 1
        assert summary.matching_fields + summary.differing_fields <= summary.total_fields
        assert "birth_date" in summary.missing_on_providers[Provider.FAMILYSEARCH]
        assert "birth_date" in summary.missing_on_providers[Provider.WIKITREE]
        assert Provider.ANCESTRY not in summary.missing_on_providers

    @pytest.mark.asyncio
    async def test_exact_summary_counts(
        self, builder: ComparisonBuilder, identity_map: IdentityMap, cache: ProviderCache
    ):
        identity_map.register("p1", Provider.FAMILYSEARCH, "KWCB-P1")
        identity_map.register("p1", Provider.WIKITREE, "Smith-1")
        cache.save(make_entry(Provider.FAMILYSEARCH, "KWCB-P1", name="John Smith", gender="male"))
        cache.save(make_entry(Provider.WIKITREE, "Smith-1", name="Jack Smithers", gender="male"))

        summary = (await builder.build("p1")).summary

        # name differs on wikitree; gender and the two empty death fields match
        assert summary.differing_fields == 1
        assert summary.matching_fields == 3
        assert summary.missing_on_providers[Provider.FAMILYSEARCH] == [
            "birth_date",
            "birth_place",
            "alternate_names",
            "father_name",
            "mother_name",
            "children_count",
            "occupations",
        ]

    @pytest.mark.asyncio
    async def test_overrides_win(
        self, builder: ComparisonBuilder, family: SQLiteLocalStore, identity_map: IdentityMap, cache: ProviderCache
    ):
        family.set_override("p1", "birth_place", "Saskatchewan")
        identity_map.register("p1", Provider.WIKITREE, "Smith-1")
        cache.save(
            make_entry(Provider.WIKITREE, "Smith-1", birth=VitalEvent(place="Regina, Saskatchewan, Canada"))
        )
        report = await builder.build("p1")

        assert report.row("birth_place").local_value == "Saskatchewan"
        assert status(report, "birth_place", Provider.WIKITREE) == ComparisonStatus.DIFFERENT

    @pytest.mark.asyncio
    async def test_malformed_raw_cache_file(
        self, builder: ComparisonBuilder, identity_map: IdentityMap, cache: ProviderCache
    ):
        identity_map.register("p1", Provider.FAMILYSEARCH, "K1")
        path = cache.path_for(Provider.FAMILYSEARCH, "K1")
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"persons": [{"id": "K1", "display": "oops", "names": ["John"]}]}))

        report = await builder.build("p1")
        assert status(report, "name", Provider.FAMILYSEARCH) == ComparisonStatus.MISSING_PROVIDER


class TestParentNames:
    @pytest.mark.asyncio
    async def test_parent_name_from_local_db(
        self, builder: ComparisonBuilder, identity_map: IdentityMap, cache: ProviderCache
    ):
        identity_map.register("p1", Provider.FAMILYSEARCH, "KWCB-P1")
        identity_map.register("p2", Provider.FAMILYSEARCH, "KWCF-W")
        cache.save(make_entry(Provider.FAMILYSEARCH, "KWCB-P1", father_external_id="KWCF-W"))

        report = await builder.build("p1")
        row = report.row("father_name")
        assert row.local_value == "William Smith"
        assert row.provider_values[Provider.FAMILYSEARCH].value == "William Smith"
        assert row.provider_values[Provider.FAMILYSEARCH].status == ComparisonStatus.MATCH
        assert row.provider_values[Provider.FAMILYSEARCH].url.endswith("/KWCF-W")

    @pytest.mark.asyncio
    async def test_parent_name_from_provider_cache(
        self, builder: ComparisonBuilder, identity_map: IdentityMap, cache: ProviderCache
    ):
        identity_map.register("p1", Provider.FAMILYSEARCH, "KWCB-P1")
        cache.save(make_entry(Provider.FAMILYSEARCH, "KWCB-P1", mother_external_id="KWCM-M"))
        cache.save(make_entry(Provider.FAMILYSEARCH, "KWCM-M", name="Mary Ann Jones"))

        report = await builder.build("p1")
        assert report.row("mother_name").provider_values[Provider.FAMILYSEARCH].value == "Mary Ann Jones"

    @pytest.mark.asyncio
    async def test_failing_resolver_does_not_abort(self):
        calls = []

        async def broken(provider, external_id):
            calls.append("broken")
            raise RuntimeError("db unavailable")

        async def empty(provider, external_id):
            calls.append("empty")
            return None

        async def found(provider, external_id):
            calls.append("found")
            return "Ann Brown"

        async def never(provider, external_id):
            calls.append("never")
            return "unreachable"

        resolver = ParentNameResolver([broken, empty, found, never])
        assert await resolver.resolve(Provider.FAMILYSEARCH, "X") == "Ann Brown"
        assert calls == ["broken", "empty", "found"]
        assert await resolver.resolve(Provider.FAMILYSEARCH, None) is None

    @pytest.mark.asyncio
    async def test_cached_snapshot_is_not_mutated(
        self, builder: ComparisonBuilder, identity_map: IdentityMap, cache: ProviderCache
    ):
        identity_map.register("p1", Provider.FAMILYSEARCH, "KWCB-P1")
        identity_map.register("p2", Provider.FAMILYSEARCH, "KWCF-W")
        cache.save(make_entry(Provider.FAMILYSEARCH, "KWCB-P1", father_external_id="KWCF-W"))

        await builder.build("p1")
        assert cache.get(Provider.FAMILYSEARCH, "KWCB-P1").scraped_data.father_name is None
