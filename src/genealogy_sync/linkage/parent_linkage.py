"""Suggest identity links for a person's local parents.

Given a child linked to a provider, the provider's snapshot names the child's
father and mother by external ID. Where the matching local parent has no link
on that provider yet, the resolver proposes one. It never writes: suggestions
become identity mappings only through ``ApplyService.apply_parent_link``.
"""
from __future__ import annotations

import structlog

from ..cache.provider_cache import ProviderCache
from ..identity.identity_map import IdentityMap
from ..models.comparison import (
    AncestorLinkResult,
    ParentLinkResult,
    ParentLinkSuggestion,
    SkippedParent,
    SkipReason,
)
from ..models.person import ParentEdge, ParentRole
from ..models.provider import Provider
from ..storage.base import LocalStore
from ..storage.sqlite_store import apply_overrides
from ..sync.queue import build_queue
from ..utils.normalize import names_match
from .urls import build_provider_url, extract_ancestry_tree_id

logger = structlog.get_logger(__name__)

# Names agree
LINK_CONFIDENCE_NAME_MATCH = 1.0
# Identity rests on relational position alone
LINK_CONFIDENCE_POSITION = 0.7


def assign_parent_slots(edges: list[ParentEdge]) -> dict[ParentRole, str]:
    """Place local parents into father/mother slots.

    Explicit roles win; untyped parents fill the remaining slots in order.
    """
    slots: dict[ParentRole, str] = {}
    untyped: list[str] = []
    for edge in edges:
        if edge.role in (ParentRole.FATHER, ParentRole.MOTHER) and edge.role not in slots:
            slots[edge.role] = edge.parent_id
        else:
            untyped.append(edge.parent_id)
    for role in (ParentRole.FATHER, ParentRole.MOTHER):
        if role not in slots and untyped:
            slots[role] = untyped.pop(0)
    return slots


class ParentLinkageResolver:
    def __init__(self, store: LocalStore, identity_map: IdentityMap, cache: ProviderCache) -> None:
        self.store = store
        self.identity_map = identity_map
        self.cache = cache

    def _local_name(self, person_id: str) -> str | None:
        person = self.store.get_person(person_id)
        if person is None:
            return None
        return apply_overrides(person, self.store.get_overrides(person_id)).display_name or None

    def _provider_name(self, provider: Provider, external_id: str, reported: str | None) -> str | None:
        if reported:
            return reported
        entry = self.cache.get(provider, external_id)
        return entry.scraped_data.name if entry else None

    def suggest(self, child_id: str, provider: Provider | str) -> ParentLinkResult:
        """Propose links between the child's local parents and the provider's parents."""
        provider = Provider(provider)
        result = ParentLinkResult(child_id=child_id, provider=provider)

        child_identity = self.identity_map.get_for_person(child_id, provider)
        if child_identity is None:
            result.skipped.append(SkippedParent(role=ParentRole.PARENT, reason=SkipReason.NOT_LINKED))
            return result

        entry = self.cache.get(provider, child_identity.external_id)
        if entry is None:
            result.skipped.append(
                SkippedParent(
                    role=ParentRole.PARENT,
                    reason=SkipReason.NO_CACHE,
                    external_id=child_identity.external_id,
                )
            )
            return result

        tree_id = extract_ancestry_tree_id(child_identity.url or entry.source_url)
        local_slots = assign_parent_slots(self.store.get_parent_edges(child_id))
        data = entry.scraped_data
        reported = {
            ParentRole.FATHER: (data.father_external_id, data.father_name),
            ParentRole.MOTHER: (data.mother_external_id, data.mother_name),
        }

        for role, (provider_parent_id, reported_name) in reported.items():
            local_parent_id = local_slots.get(role)
            if not local_parent_id:
                result.skipped.append(
                    SkippedParent(role=role, reason=SkipReason.NO_LOCAL_PARENT, external_id=provider_parent_id)
                )
                continue
            if not provider_parent_id:
                result.skipped.append(
                    SkippedParent(role=role, reason=SkipReason.NO_PROVIDER_PARENT, local_parent_id=local_parent_id)
                )
                continue
            if self.identity_map.get_external_id(local_parent_id, provider):
                result.skipped.append(
                    SkippedParent(
                        role=role,
                        reason=SkipReason.ALREADY_LINKED,
                        local_parent_id=local_parent_id,
                        external_id=provider_parent_id,
                    )
                )
                continue
            owner = self.identity_map.resolve(provider_parent_id, provider)
            if owner is not None and owner != local_parent_id:
                result.skipped.append(
                    SkippedParent(
                        role=role,
                        reason=SkipReason.PROVIDER_ID_TAKEN,
                        local_parent_id=local_parent_id,
                        external_id=provider_parent_id,
                    )
                )
                continue

            local_name = self._local_name(local_parent_id)
            provider_name = self._provider_name(provider, provider_parent_id, reported_name)
            matched = names_match(local_name, provider_name)
            result.suggestions.append(
                ParentLinkSuggestion(
                    child_id=child_id,
                    local_parent_id=local_parent_id,
                    role=role,
                    provider=provider,
                    external_id=provider_parent_id,
                    confidence=LINK_CONFIDENCE_NAME_MATCH if matched else LINK_CONFIDENCE_POSITION,
                    url=build_provider_url(provider, provider_parent_id, tree_id),
                    local_name=local_name,
                    provider_name=provider_name,
                    name_match=matched,
                )
            )

        logger.info(
            "parent_linkage.suggest",
            child_id=child_id,
            provider=provider.value,
            suggestions=len(result.suggestions),
            skipped=len(result.skipped),
        )
        return result

    def suggest_ancestors(
        self, root_id: str, provider: Provider | str, max_generations: int
    ) -> AncestorLinkResult:
        """Run ``suggest`` for the root and every ancestor within ``max_generations``.

        Ancestors are visited breadth-first, each once even under pedigree
        collapse. Like ``suggest`` this only reads; nothing is linked.
        """
        provider = Provider(provider)
        result = AncestorLinkResult(root_id=root_id, provider=provider)
        for queued in build_queue(self.store, root_id, max_generations):
            person_result = self.suggest(queued.person_id, provider)
            result.results.append(person_result)
            result.persons_visited += 1
            result.generations_traversed = max(result.generations_traversed, queued.generation)
            result.total_suggested += len(person_result.suggestions)
            result.total_skipped += len(person_result.skipped)

        logger.info(
            "parent_linkage.suggest_ancestors",
            root_id=root_id,
            provider=provider.value,
            visited=result.persons_visited,
            generations=result.generations_traversed,
            suggested=result.total_suggested,
            skipped=result.total_skipped,
        )
        return result
