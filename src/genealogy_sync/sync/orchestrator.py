"""Sequential BFS sync over the local ancestor graph.

State machine:

    started -> queue_built -> (person_started -> step_complete* -> person_complete)* -> completed

with ``cancelled`` and ``error`` as terminal exits. ``run`` is an async
generator, so each event is produced only when the consumer asks for the next
one. Persons are processed one at a time; the single provider session cannot
serve concurrent navigations.
"""
from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Literal

import structlog

from ..config import CONFIG, SyncConfig
from ..errors import ProviderFetchError, SessionUnavailableError, SyncAlreadyRunningError
from ..identity.identity_map import IdentityMap
from ..models.person import CanonicalPerson
from ..models.provider import Provider
from ..models.sync import (
    HintResult,
    ProgressEvent,
    ProgressEventType,
    QueuedPerson,
    SyncStats,
    SyncStatus,
    SyncStep,
)
from ..net import Sleeper, jittered_delay
from ..refresh.refresher import ProviderRefresher
from ..storage.sqlite_store import StoreRegistry, apply_overrides
from .operations import OperationRegistry
from .queue import build_queue, resolve_generations

logger = structlog.get_logger(__name__)

# (person_id, provider, external_id) -> hint counts
HintProcessor = Callable[[str, Provider, str], Awaitable[HintResult]]
# Raises SessionUnavailableError or returns False when the session is unusable
SessionCheck = Callable[[Provider], Awaitable[bool]]


@dataclass
class SyncRun:
    """Transient state of one traversal. Discarded when the run ends."""

    operation_id: str
    db_id: str
    root_id: str
    provider: Provider
    max_generations: int
    dry_run: bool = False
    queue: list[QueuedPerson] = field(default_factory=list)
    processed: set[str] = field(default_factory=set)
    counted_parents: set[str] = field(default_factory=set)
    stats: SyncStats = field(default_factory=SyncStats)
    processed_count: int = 0
    current_generation: int = 0


class SyncOrchestrator:
    """Drives the per-person pipeline over a bounded ancestor queue.

    Steps per person: ensure_record (is the person linked on the provider),
    process_hints and download_data (best effort, linked persons only,
    skipped in dry runs), queue_parents (how many of its parents are queued
    and not yet processed). Step failures are counted in ``stats.errors`` and
    never end the run.
    """

    def __init__(
        self,
        stores: StoreRegistry,
        identity_map: IdentityMap,
        refresher: ProviderRefresher | None = None,
        hint_processor: HintProcessor | None = None,
        session_check: SessionCheck | None = None,
        registry: OperationRegistry | None = None,
        config: SyncConfig = CONFIG,
        sleep: Sleeper | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.stores = stores
        self.identity_map = identity_map
        self.refresher = refresher
        self.hint_processor = hint_processor
        self.session_check = session_check
        self.registry = registry or OperationRegistry()
        self.config = config
        self._sleep = sleep or asyncio.sleep
        self._rng = rng

    # --------------------------- Queries ---------------------------

    def validate_root(self, db_id: str, root_id: str) -> CanonicalPerson | None:
        if not self.stores.exists(db_id):
            return None
        return self.stores.get(db_id).get_person(root_id)

    def request_cancel(self, operation_id: str) -> bool:
        return self.registry.request_cancel(operation_id)

    def get_status(self, db_id: str | None = None) -> SyncStatus:
        op = self.registry.active(db_id)
        if op is None:
            return SyncStatus(running=False)
        return SyncStatus(running=True, operation_id=op.id, progress=op.progress)

    # --------------------------- Run ---------------------------

    def _event(
        self,
        run: SyncRun,
        type: ProgressEventType,
        message: str,
        person: QueuedPerson | None = None,
        person_name: str | None = None,
        step: SyncStep | None = None,
    ) -> ProgressEvent:
        event = ProgressEvent(
            type=type,
            operation_id=run.operation_id,
            processed_count=run.processed_count,
            total_count=len(run.queue),
            current_generation=run.current_generation,
            max_generations=run.max_generations,
            current_person_id=person.person_id if person else None,
            current_person_name=person_name,
            step=step,
            stats=run.stats.model_copy(),
            message=message,
        )
        self.registry.update_progress(run.operation_id, event)
        return event

    async def run(
        self,
        db_id: str,
        root_id: str,
        max_generations: int | Literal["full"] = 5,
        provider: Provider | str = Provider.ANCESTRY,
        dry_run: bool = False,
    ) -> AsyncIterator[ProgressEvent]:
        """Stream progress events for one sync run."""
        provider = Provider(provider)
        try:
            op = self.registry.start(db_id)
        except SyncAlreadyRunningError as e:
            logger.warning("sync.already_running", db_id=db_id, operation_id=e.operation_id)
            yield ProgressEvent(type=ProgressEventType.ERROR, message=str(e))
            return

        try:
            generations = resolve_generations(max_generations, self.config.full_generation_cap)
        except ValueError as e:
            self.registry.finish(op.id)
            yield ProgressEvent(type=ProgressEventType.ERROR, operation_id=op.id, message=str(e))
            return

        run = SyncRun(
            operation_id=op.id,
            db_id=db_id,
            root_id=root_id,
            provider=provider,
            max_generations=generations,
            dry_run=dry_run,
        )
        try:
            async for event in self._run(run):
                yield event
        finally:
            self.registry.finish(op.id)

    async def _run(self, run: SyncRun) -> AsyncIterator[ProgressEvent]:
        mode = " (dry run)" if run.dry_run else ""
        logger.info(
            "sync.started",
            operation_id=run.operation_id,
            db_id=run.db_id,
            root_id=run.root_id,
            provider=run.provider.value,
            max_generations=run.max_generations,
            dry_run=run.dry_run,
        )
        yield self._event(run, ProgressEventType.STARTED, f"Starting {run.provider.value} sync from {run.root_id}{mode}")

        try:
            if self.session_check is not None and not await self.session_check(run.provider):
                raise SessionUnavailableError(f"{run.provider.value} session is not available")

            store = self.stores.get(run.db_id)
            if store.get_person(run.root_id) is None:
                yield self._error(run, f"Root person {run.root_id} not found in database {run.db_id}")
                return

            run.queue = build_queue(store, run.root_id, run.max_generations)
            if not run.queue:
                yield self._error(run, "No persons found in queue. Check the root person ID.")
                return
            queued_ids = {item.person_id for item in run.queue}
            yield self._event(
                run,
                ProgressEventType.QUEUE_BUILT,
                f"Queued {len(run.queue)} persons across {run.max_generations} generations",
            )

            for index, item in enumerate(run.queue):
                if self.registry.is_cancelled(run.operation_id):
                    logger.info("sync.cancelled", operation_id=run.operation_id, processed=run.processed_count)
                    yield self._event(
                        run,
                        ProgressEventType.CANCELLED,
                        f"Cancelled after {run.processed_count} of {len(run.queue)} persons",
                    )
                    return

                touched_provider = False
                async for event, used_provider in self._process_person(run, store, item, queued_ids):
                    touched_provider = touched_provider or used_provider
                    yield event

                is_last = index == len(run.queue) - 1
                if touched_provider and not is_last:
                    await self._sleep(jittered_delay(self.config.rate_limit(run.provider), self._rng))

        except SessionUnavailableError as e:
            yield self._error(run, str(e))
            return
        except Exception as e:
            logger.exception("sync.failed", operation_id=run.operation_id, error=str(e))
            yield self._error(run, f"Sync failed: {e}")
            return

        logger.info("sync.completed", operation_id=run.operation_id, **run.stats.model_dump())
        yield self._event(
            run,
            ProgressEventType.COMPLETED,
            f"Sync complete: processed {run.processed_count} persons",
        )

    def _error(self, run: SyncRun, message: str) -> ProgressEvent:
        logger.warning("sync.error", operation_id=run.operation_id, message=message)
        return self._event(run, ProgressEventType.ERROR, message)

    async def _process_person(
        self, run: SyncRun, store, item: QueuedPerson, queued_ids: set[str]
    ) -> AsyncIterator[tuple[ProgressEvent, bool]]:
        run.current_generation = item.generation
        person = store.get_person(item.person_id)
        name = apply_overrides(person, store.get_overrides(item.person_id)).display_name if person else None
        step_event = ProgressEventType.STEP_COMPLETE

        yield self._event(
            run,
            ProgressEventType.PERSON_STARTED,
            f"Processing {name or item.person_id} (generation {item.generation})",
            person=item,
            person_name=name,
        ), False

        # ensure_record
        external_id = self.identity_map.get_external_id(item.person_id, run.provider)
        if external_id:
            run.stats.records_linked += 1
            message = f"Linked to {run.provider.value} {external_id}"
        else:
            run.stats.skipped += 1
            message = f"Not linked to {run.provider.value}"
        yield self._event(run, step_event, message, item, name, SyncStep.ENSURE_RECORD), False

        active = bool(external_id) and not run.dry_run

        # process_hints
        used_hints = False
        if not active:
            message = "Skipped hints" + (" (dry run)" if run.dry_run and external_id else "")
        elif self.hint_processor is None:
            message = "No hint processor configured"
        else:
            used_hints = True
            try:
                hints = await self.hint_processor(item.person_id, run.provider, external_id)
                run.stats.hints_processed += hints.hints_processed
                run.stats.errors += hints.errors
                message = f"Processed {hints.hints_processed} of {hints.hints_found} hints"
            except Exception as e:
                run.stats.errors += 1
                logger.warning("sync.hints_failed", person_id=item.person_id, error=str(e))
                message = f"Hint processing failed: {e}"
        yield self._event(run, step_event, message, item, name, SyncStep.PROCESS_HINTS), used_hints

        # download_data
        used_fetch = False
        if not active:
            message = "Skipped download" + (" (dry run)" if run.dry_run and external_id else "")
        elif self.refresher is None or not self.refresher.supports(run.provider):
            message = f"No fetcher configured for {run.provider.value}"
        else:
            try:
                _, fetched = await self.refresher.ensure_cached(
                    run.provider, external_id, person_id=item.person_id, max_age_days=self.config.stale_days
                )
                used_fetch = fetched
                if fetched:
                    run.stats.data_downloaded += 1
                    message = f"Downloaded {run.provider.value} data"
                else:
                    message = "Cached data is fresh"
            except ProviderFetchError as e:
                used_fetch = True
                run.stats.errors += 1
                logger.warning("sync.download_failed", person_id=item.person_id, error=str(e))
                message = f"Download failed: {e}"
            except Exception as e:
                used_fetch = True
                run.stats.errors += 1
                logger.warning("sync.download_failed", person_id=item.person_id, error=repr(e))
                message = f"Download failed: {e}"
        yield self._event(run, step_event, message, item, name, SyncStep.DOWNLOAD_DATA), used_fetch

        # queue_parents
        run.processed.add(item.person_id)
        newly = 0
        for edge in store.get_parent_edges(item.person_id):
            pid = edge.parent_id
            if pid in queued_ids and pid not in run.processed and pid not in run.counted_parents:
                run.counted_parents.add(pid)
                newly += 1
        run.stats.parents_queued += newly
        yield self._event(run, step_event, f"{newly} parents queued", item, name, SyncStep.QUEUE_PARENTS), False

        run.processed_count += 1
        yield self._event(
            run,
            ProgressEventType.PERSON_COMPLETE,
            f"Finished {name or item.person_id}",
            item,
            name,
        ), False
