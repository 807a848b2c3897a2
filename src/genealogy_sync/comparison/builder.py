"""Per-person, per-field, per-provider comparison reports."""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from ..cache.provider_cache import ProviderCache
from ..errors import PersonMissingError
from ..identity.identity_map import IdentityMap
from ..linkage.parent_linkage import assign_parent_slots
from ..linkage.urls import build_provider_url, extract_ancestry_tree_id
from ..models.comparison import (
    ComparisonReport,
    ComparisonStatus,
    ComparisonSummary,
    FieldComparisonRow,
    ProviderFieldValue,
    ProviderLinkInfo,
)
from ..models.person import CanonicalPerson, ParentRole
from ..models.provider import Provider, ProviderCacheEntry, ScrapedPersonData
from ..refresh.refresher import ProviderRefresher
from ..storage.base import LocalStore
from ..storage.sqlite_store import apply_overrides
from .field_comparator import COMPARISON_FIELDS, compare_field, display_value
from .parent_names import ParentNameResolver, default_chain

logger = structlog.get_logger(__name__)


def local_field_values(
    person: CanonicalPerson, father_name: str | None, mother_name: str | None
) -> dict[str, Any]:
    birth = person.birth
    death = person.death
    return {
        "name": person.display_name or None,
        "gender": person.gender,
        "birth_date": birth.date if birth else None,
        "birth_place": birth.place if birth else None,
        "death_date": death.date if death else None,
        "death_place": death.place if death else None,
        "alternate_names": person.alternate_names,
        "father_name": father_name,
        "mother_name": mother_name,
        "children_count": len(person.child_ids),
        "occupations": person.occupations,
    }


def provider_field_values(data: ScrapedPersonData | None) -> dict[str, Any]:
    if data is None:
        return {f.name: None for f in COMPARISON_FIELDS}
    birth = data.birth
    death = data.death
    return {
        "name": data.name,
        "gender": data.gender,
        "birth_date": birth.date if birth else None,
        "birth_place": birth.place if birth else None,
        "death_date": death.date if death else None,
        "death_place": death.place if death else None,
        "alternate_names": data.alternate_names,
        "father_name": data.father_name,
        "mother_name": data.mother_name,
        "children_count": data.children_count,
        "occupations": data.occupations,
    }


class ComparisonBuilder:
    """Builds a ComparisonReport from the local store, identity map and cache.

    Reads only. Overrides are applied to the local side before comparison.
    """

    def __init__(
        self,
        store: LocalStore,
        identity_map: IdentityMap,
        cache: ProviderCache,
        refresher: ProviderRefresher | None = None,
        providers: Sequence[Provider] = tuple(Provider),
        db_id: str = "",
        parent_names: ParentNameResolver | None = None,
    ) -> None:
        self.store = store
        self.identity_map = identity_map
        self.cache = cache
        self.providers = tuple(providers)
        self.db_id = db_id
        self.parent_names = parent_names or default_chain(store, identity_map, cache, refresher)

    def _effective(self, person_id: str) -> CanonicalPerson | None:
        person = self.store.get_person(person_id)
        if person is None:
            return None
        return apply_overrides(person, self.store.get_overrides(person_id))

    def _local_parent_names(self, person_id: str) -> tuple[str | None, str | None]:
        slots = assign_parent_slots(self.store.get_parent_edges(person_id))
        names = []
        for role in (ParentRole.FATHER, ParentRole.MOTHER):
            parent_id = slots.get(role)
            parent = self._effective(parent_id) if parent_id else None
            names.append((parent.display_name or None) if parent else None)
        return names[0], names[1]

    async def _load_provider(
        self, person_id: str, provider: Provider
    ) -> tuple[ProviderLinkInfo, ScrapedPersonData | None]:
        identity = self.identity_map.get_for_person(person_id, provider)
        if identity is None:
            return ProviderLinkInfo(provider=provider), None

        info = ProviderLinkInfo(
            provider=provider, is_linked=True, external_id=identity.external_id, url=identity.url
        )
        entry: ProviderCacheEntry | None = self.cache.get(provider, identity.external_id)
        if entry is None:
            return info, None

        info.last_scraped_at = entry.scraped_at
        data = entry.scraped_data.model_copy()
        if data.father_external_id and not data.father_name:
            data.father_name = await self.parent_names.resolve(provider, data.father_external_id)
        if data.mother_external_id and not data.mother_name:
            data.mother_name = await self.parent_names.resolve(provider, data.mother_external_id)
        return info, data

    async def build(self, person_id: str) -> ComparisonReport:
        """Compare one person across the provider roster.

        Raises:
            PersonMissingError: the person is not in the local store.
        """
        person = self._effective(person_id)
        if person is None:
            raise PersonMissingError(self.db_id, person_id)

        father_name, mother_name = self._local_parent_names(person_id)
        local_values = local_field_values(person, father_name, mother_name)

        links: list[ProviderLinkInfo] = []
        provider_values: dict[Provider, dict[str, Any]] = {}
        provider_data: dict[Provider, ScrapedPersonData | None] = {}
        for provider in self.providers:
            info, data = await self._load_provider(person_id, provider)
            links.append(info)
            provider_data[provider] = data
            provider_values[provider] = provider_field_values(data)
        linked = {info.provider: info for info in links if info.is_linked}

        rows: list[FieldComparisonRow] = []
        summary = ComparisonSummary(
            total_fields=len(COMPARISON_FIELDS),
            missing_on_providers={p: [] for p in linked},
        )
        for spec in COMPARISON_FIELDS:
            local_raw = local_values[spec.name]
            row = FieldComparisonRow(field=spec.name, label=spec.label, local_value=display_value(local_raw))
            for provider in self.providers:
                provider_raw = provider_values[provider][spec.name]
                status = compare_field(spec.name, local_raw, provider_raw)
                info = linked.get(provider)
                row.provider_values[provider] = ProviderFieldValue(
                    value=display_value(provider_raw),
                    status=status,
                    last_scraped_at=info.last_scraped_at if info else None,
                    url=self._parent_url(spec.name, provider, provider_data[provider], info),
                )
                if info is not None and status is ComparisonStatus.MISSING_PROVIDER:
                    summary.missing_on_providers[provider].append(spec.name)
            rows.append(row)

            statuses = [row.provider_values[p].status for p in linked]
            has_match = ComparisonStatus.MATCH in statuses
            has_different = ComparisonStatus.DIFFERENT in statuses
            if has_different:
                summary.differing_fields += 1
            elif has_match:
                summary.matching_fields += 1

        logger.info(
            "comparison.built",
            person_id=person_id,
            linked=[p.value for p in linked],
            matching=summary.matching_fields,
            differing=summary.differing_fields,
        )
        return ComparisonReport(
            person_id=person_id,
            display_name=person.display_name,
            providers=links,
            fields=rows,
            summary=summary,
        )

    @staticmethod
    def _parent_url(
        field: str,
        provider: Provider,
        data: ScrapedPersonData | None,
        info: ProviderLinkInfo | None,
    ) -> str | None:
        if data is None or info is None:
            return None
        if field == "father_name":
            parent_id = data.father_external_id
        elif field == "mother_name":
            parent_id = data.mother_external_id
        else:
            return None
        if not parent_id:
            return None
        return build_provider_url(provider, parent_id, extract_ancestry_tree_id(info.url))
