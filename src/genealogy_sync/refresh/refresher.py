"""Fetch provider data into the cache."""
from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime

import structlog

from ..cache.provider_cache import ProviderCache
from ..config import CONFIG, SyncConfig
from ..errors import ProviderFetchError
from ..identity.identity_map import IdentityMap
from ..models.provider import Provider, ProviderCacheEntry
from ..net import GUARDS, ProviderPacer
from ..providers.base import ProviderFetcher
from .redirect import apply_redirect

logger = structlog.get_logger(__name__)


class ProviderRefresher:
    """Fetches persons through provider fetchers and stores the snapshots.

    Writes only the provider cache and, on a provider-side merge, the identity
    mapping for the merged ID. Canonical persons are never touched.
    """

    def __init__(
        self,
        cache: ProviderCache,
        identity_map: IdentityMap,
        fetchers: Mapping[Provider, ProviderFetcher],
        pacers: Mapping[Provider, ProviderPacer] | None = None,
        config: SyncConfig = CONFIG,
    ) -> None:
        self.cache = cache
        self.identity_map = identity_map
        self.fetchers = dict(fetchers)
        self.pacers = dict(pacers or {})
        self.config = config

    def supports(self, provider: Provider) -> bool:
        return provider in self.fetchers

    def _pacer(self, provider: Provider) -> ProviderPacer:
        if provider not in self.pacers:
            self.pacers[provider] = GUARDS.get_pacer(provider, self.config.rate_limit(provider))
        return self.pacers[provider]

    async def refresh(
        self, provider: Provider, external_id: str, person_id: str | None = None
    ) -> ProviderCacheEntry:
        """Fetch one person and overwrite its cache entry.

        Raises:
            ProviderFetchError: no fetcher for the provider, or the fetch failed.
        """
        provider = Provider(provider)
        fetcher = self.fetchers.get(provider)
        if fetcher is None:
            raise ProviderFetchError(provider.value, external_id, reason="no fetcher configured")

        await self._pacer(provider).wait()
        result = await fetcher.fetch(external_id)

        owner = person_id or self.identity_map.resolve(external_id, provider)
        entry = ProviderCacheEntry(
            person_id=owner,
            provider=provider,
            external_id=result.external_id,
            scraped_data=result.data,
            scraped_at=datetime.now(UTC),
            source_url=result.source_url or result.data.source_url,
        )

        if result.redirected:
            apply_redirect(self.cache, self.identity_map, provider, external_id, entry, person_id=owner)
        else:
            self.cache.save(entry)
        logger.info(
            "refresh.saved",
            provider=provider.value,
            external_id=result.external_id,
            redirected_from=external_id if result.redirected else None,
        )
        return entry

    async def ensure_cached(
        self,
        provider: Provider,
        external_id: str,
        person_id: str | None = None,
        max_age_days: float | None = None,
    ) -> tuple[ProviderCacheEntry, bool]:
        """Return a cache entry, fetching only when absent or stale.

        The flag is True when a fetch happened.
        """
        max_age = self.config.stale_days if max_age_days is None else max_age_days
        cached = self.cache.get(provider, external_id)
        if cached is not None and not self.cache.is_stale(cached, max_age):
            return cached, False
        return await self.refresh(provider, external_id, person_id=person_id), True

    async def fetch_display_name(self, provider: Provider, external_id: str) -> str | None:
        """Name for a provider person: cache first, then a fetch that is cached."""
        cached = self.cache.get(provider, external_id)
        if cached is not None and cached.scraped_data.name:
            return cached.scraped_data.name
        if not self.supports(provider):
            return None
        try:
            entry = await self.refresh(provider, external_id)
        except ProviderFetchError as e:
            logger.warning(
                "refresh.display_name_failed", provider=Provider(provider).value, external_id=external_id, error=str(e)
            )
            return None
        return entry.scraped_data.name
