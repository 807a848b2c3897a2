"""Facade over the reconciliation core.

Every non-streaming operation returns an ``Envelope``; failures become
``success=False`` with a human-readable message instead of propagating to the
caller (CLI or an HTTP layer).
"""
from __future__ import annotations

import random
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from typing import Literal, TypeVar

import structlog

from .apply import ApplyService
from .cache.provider_cache import ProviderCache
from .comparison.builder import ComparisonBuilder
from .config import CONFIG, SyncConfig
from .errors import DatabaseNotFoundError, GenealogySyncError, PersonMissingError
from .identity.identity_map import IdentityMap
from .linkage.parent_linkage import ParentLinkageResolver
from .models.comparison import (
    AncestorLinkResult,
    ComparisonReport,
    Envelope,
    FieldApplyOutcome,
    ParentLinkResult,
    ParentLinkSuggestion,
)
from .models.provider import ExternalIdentity, Provider, ProviderCacheEntry
from .models.sync import ProgressEvent, SyncStatus
from .net import ProviderPacer, Sleeper
from .providers.base import ProviderFetcher
from .providers.familysearch import FamilySearchFetcher
from .refresh.refresher import ProviderRefresher
from .storage.sqlite_store import SQLiteLocalStore, StoreRegistry
from .sync.orchestrator import HintProcessor, SessionCheck, SyncOrchestrator
from .sync.queue import resolve_generations

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def default_fetchers(config: SyncConfig) -> dict[Provider, ProviderFetcher]:
    fetchers: dict[Provider, ProviderFetcher] = {}
    if config.familysearch_access_token:
        fetchers[Provider.FAMILYSEARCH] = FamilySearchFetcher(
            access_token=config.familysearch_access_token,
            base_url=config.familysearch_base_url,
        )
    return fetchers


class ReconciliationService:
    """Wires the identity map, provider cache, local stores and sync orchestrator."""

    def __init__(
        self,
        config: SyncConfig = CONFIG,
        fetchers: Mapping[Provider, ProviderFetcher] | None = None,
        hint_processor: HintProcessor | None = None,
        session_check: SessionCheck | None = None,
        pacers: Mapping[Provider, ProviderPacer] | None = None,
        sleep: Sleeper | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.stores = StoreRegistry(config.data_dir)
        self.identity_map = IdentityMap(config.identity_db_path, cache_size=config.identity_cache_size)
        self.cache = ProviderCache(config.cache_dir)
        self.fetchers = dict(fetchers) if fetchers is not None else default_fetchers(config)
        self.refresher = ProviderRefresher(self.cache, self.identity_map, self.fetchers, pacers, config)
        self.orchestrator = SyncOrchestrator(
            self.stores,
            self.identity_map,
            refresher=self.refresher,
            hint_processor=hint_processor,
            session_check=session_check or self._session_ready,
            config=config,
            sleep=sleep,
            rng=rng,
        )

    async def _session_ready(self, provider: Provider) -> bool:
        fetcher = self.fetchers.get(provider)
        if fetcher is None:
            return True
        return bool(getattr(fetcher, "is_authenticated", True))

    def _store(self, db_id: str) -> SQLiteLocalStore:
        if not self.stores.exists(db_id):
            raise DatabaseNotFoundError(db_id)
        return self.stores.get(db_id)

    @staticmethod
    def _wrap(operation: str, fn: Callable[[], T]) -> Envelope[T]:
        try:
            return Envelope.ok(fn())
        except (GenealogySyncError, ValueError) as e:
            logger.warning(f"{operation}.failed", error=str(e))
            return Envelope.fail(str(e))

    # --------------------------- Comparison ---------------------------

    async def compare_across_platforms(self, db_id: str, person_id: str) -> Envelope[ComparisonReport]:
        try:
            builder = ComparisonBuilder(
                self._store(db_id), self.identity_map, self.cache, refresher=self.refresher, db_id=db_id
            )
            return Envelope.ok(await builder.build(person_id))
        except GenealogySyncError as e:
            logger.warning("compare.failed", db_id=db_id, person_id=person_id, error=str(e))
            return Envelope.fail(str(e))

    async def refresh_person(
        self, db_id: str, person_id: str, provider: Provider | str
    ) -> Envelope[ProviderCacheEntry]:
        try:
            provider = Provider(provider)
            self._store(db_id)
            external_id = self.identity_map.get_external_id(person_id, provider)
            if external_id is None:
                return Envelope.fail(f"{person_id} is not linked to {provider.value}")
            return Envelope.ok(await self.refresher.refresh(provider, external_id, person_id=person_id))
        except (GenealogySyncError, ValueError) as e:
            logger.warning("refresh.failed", person_id=person_id, provider=getattr(provider, "value", provider), error=str(e))
            return Envelope.fail(str(e))

    def stale_entries(
        self, provider: Provider | str, max_age_days: float | None = None
    ) -> Envelope[list[ProviderCacheEntry]]:
        days = self.config.stale_days if max_age_days is None else max_age_days
        return self._wrap("stale_entries", lambda: self.cache.stale_entries(provider, days))

    # --------------------------- Linking ---------------------------

    def suggest_parent_links(
        self, db_id: str, person_id: str, provider: Provider | str
    ) -> Envelope[ParentLinkResult]:
        return self._wrap(
            "suggest_parent_links",
            lambda: ParentLinkageResolver(self._store(db_id), self.identity_map, self.cache).suggest(
                person_id, provider
            ),
        )

    def suggest_ancestor_links(
        self,
        db_id: str,
        root_id: str,
        provider: Provider | str,
        max_generations: int | Literal["full"] = 5,
    ) -> Envelope[AncestorLinkResult]:
        """Parent link suggestions for a person and their ancestors. Never links anything."""

        def suggest() -> AncestorLinkResult:
            store = self._store(db_id)
            if store.get_person(root_id) is None:
                raise PersonMissingError(db_id, root_id)
            generations = resolve_generations(max_generations, self.config.full_generation_cap)
            return ParentLinkageResolver(store, self.identity_map, self.cache).suggest_ancestors(
                root_id, provider, generations
            )

        return self._wrap("suggest_ancestor_links", suggest)

    def apply_parent_link(self, db_id: str, suggestion: ParentLinkSuggestion) -> Envelope[ExternalIdentity]:
        return self._wrap(
            "apply_parent_link",
            lambda: self._apply(db_id).apply_parent_link(suggestion),
        )

    def apply_provider_values(
        self, db_id: str, person_id: str, provider: Provider | str, fields: Iterable[str]
    ) -> Envelope[list[FieldApplyOutcome]]:
        return self._wrap(
            "apply_provider_values",
            lambda: self._apply(db_id).apply_provider_values(person_id, provider, fields),
        )

    def _apply(self, db_id: str) -> ApplyService:
        return ApplyService(self._store(db_id), self.identity_map, self.cache, self.config, db_id=db_id)

    # --------------------------- Sync ---------------------------

    def run_sync(
        self,
        db_id: str,
        root_id: str,
        max_generations: int | Literal["full"] = 5,
        provider: Provider | str = Provider.ANCESTRY,
        dry_run: bool = False,
    ) -> AsyncIterator[ProgressEvent]:
        return self.orchestrator.run(db_id, root_id, max_generations, provider=provider, dry_run=dry_run)

    def request_cancel(self, operation_id: str) -> bool:
        return self.orchestrator.request_cancel(operation_id)

    def get_status(self, db_id: str | None = None) -> SyncStatus:
        return self.orchestrator.get_status(db_id)

    async def aclose(self) -> None:
        for fetcher in self.fetchers.values():
            await fetcher.aclose()
