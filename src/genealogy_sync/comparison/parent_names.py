"""Ordered fallbacks for the display name of a provider-reported parent.

Resolvers run in order (local database, provider cache, on-demand fetch); the
first non-empty name wins. A resolver that raises is logged and skipped, so a
failed lookup never aborts a comparison.
"""
from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence

import structlog

from ..cache.provider_cache import ProviderCache
from ..identity.identity_map import IdentityMap
from ..models.provider import Provider
from ..refresh.refresher import ProviderRefresher
from ..storage.base import LocalStore
from ..storage.sqlite_store import apply_overrides

logger = structlog.get_logger(__name__)

NameResolver = Callable[[Provider, str], Awaitable[str | None]]


def local_db_resolver(store: LocalStore, identity_map: IdentityMap) -> NameResolver:
    async def resolve(provider: Provider, external_id: str) -> str | None:
        person_id = identity_map.resolve(external_id, provider)
        if person_id is None:
            return None
        person = store.get_person(person_id)
        if person is None:
            return None
        return apply_overrides(person, store.get_overrides(person_id)).display_name or None

    resolve.__name__ = "local_db"
    return resolve


def cache_resolver(cache: ProviderCache) -> NameResolver:
    async def resolve(provider: Provider, external_id: str) -> str | None:
        entry = cache.get(provider, external_id)
        return entry.scraped_data.name if entry else None

    resolve.__name__ = "provider_cache"
    return resolve


def fetch_resolver(refresher: ProviderRefresher) -> NameResolver:
    async def resolve(provider: Provider, external_id: str) -> str | None:
        return await refresher.fetch_display_name(provider, external_id)

    resolve.__name__ = "fetch"
    return resolve


class ParentNameResolver:
    def __init__(self, resolvers: Sequence[NameResolver]) -> None:
        self.resolvers = list(resolvers)

    async def resolve(self, provider: Provider, external_id: str | None) -> str | None:
        if not external_id:
            return None
        for resolver in self.resolvers:
            try:
                name = await resolver(provider, external_id)
            except Exception as e:
                logger.warning(
                    "parent_names.resolver_failed",
                    resolver=getattr(resolver, "__name__", repr(resolver)),
                    provider=provider.value,
                    external_id=external_id,
                    error=str(e),
                )
                continue
            if name:
                return name
        return None


def default_chain(
    store: LocalStore,
    identity_map: IdentityMap,
    cache: ProviderCache,
    refresher: ProviderRefresher | None = None,
) -> ParentNameResolver:
    resolvers: list[NameResolver] = [local_db_resolver(store, identity_map), cache_resolver(cache)]
    if refresher is not None:
        resolvers.append(fetch_resolver(refresher))
    return ParentNameResolver(resolvers)
