"""Operator-triggered apply actions.

These are the only paths by which discovered provider data reaches the
identity map (parent links) or the local record (field values, stored as
overrides so the base record stays intact).
"""
from __future__ import annotations

from collections.abc import Iterable

import structlog

from .cache.provider_cache import ProviderCache
from .comparison.builder import provider_field_values
from .comparison.field_comparator import FIELDS_BY_NAME
from .config import CONFIG, SyncConfig
from .errors import LinkRejectedError, PersonMissingError
from .identity.identity_map import IdentityMap
from .models.comparison import FieldApplyOutcome, ParentLinkSuggestion
from .models.person import LIST_OVERRIDE_FIELDS, OVERRIDE_FIELDS
from .models.provider import ExternalIdentity, Provider
from .storage.sqlite_store import SQLiteLocalStore

logger = structlog.get_logger(__name__)


class ApplyService:
    def __init__(
        self,
        store: SQLiteLocalStore,
        identity_map: IdentityMap,
        cache: ProviderCache,
        config: SyncConfig = CONFIG,
        db_id: str = "",
    ) -> None:
        self.store = store
        self.identity_map = identity_map
        self.cache = cache
        self.config = config
        self.db_id = db_id

    def apply_parent_link(self, suggestion: ParentLinkSuggestion) -> ExternalIdentity:
        """Commit a parent link suggestion as an identity mapping.

        Raises:
            LinkRejectedError: confidence below the threshold, the provider ID
                belongs to another person, or the parent is already linked to a
                different ID on the provider.
        """
        if suggestion.confidence < self.config.link_threshold:
            raise LinkRejectedError(
                f"confidence {suggestion.confidence:.2f} is below threshold {self.config.link_threshold:.2f}"
            )
        owner = self.identity_map.resolve(suggestion.external_id, suggestion.provider)
        if owner is not None and owner != suggestion.local_parent_id:
            raise LinkRejectedError(
                f"{suggestion.provider.value} {suggestion.external_id} is already linked to {owner}"
            )
        current = self.identity_map.get_external_id(suggestion.local_parent_id, suggestion.provider)
        if current is not None and current != suggestion.external_id:
            raise LinkRejectedError(
                f"{suggestion.local_parent_id} is already linked to {suggestion.provider.value} {current}"
            )

        identity = self.identity_map.register(
            suggestion.local_parent_id,
            suggestion.provider,
            suggestion.external_id,
            url=suggestion.url,
            confidence=suggestion.confidence,
        )
        logger.info(
            "apply.parent_link",
            child_id=suggestion.child_id,
            parent_id=suggestion.local_parent_id,
            provider=suggestion.provider.value,
            external_id=suggestion.external_id,
        )
        return identity

    def apply_provider_values(
        self, person_id: str, provider: Provider | str, fields: Iterable[str]
    ) -> list[FieldApplyOutcome]:
        """Copy cached provider values into local overrides, one outcome per field.

        Raises:
            PersonMissingError: the person is not in the local store.
        """
        provider = Provider(provider)
        requested = list(dict.fromkeys(fields))
        if self.store.get_person(person_id) is None:
            raise PersonMissingError(self.db_id, person_id)

        external_id = self.identity_map.get_external_id(person_id, provider)
        if external_id is None:
            return [FieldApplyOutcome(field=f, applied=False, reason="not_linked") for f in requested]
        entry = self.cache.get(provider, external_id)
        if entry is None:
            return [FieldApplyOutcome(field=f, applied=False, reason="no_cache") for f in requested]

        values = provider_field_values(entry.scraped_data)
        outcomes: list[FieldApplyOutcome] = []
        for field in requested:
            if field not in FIELDS_BY_NAME:
                outcomes.append(FieldApplyOutcome(field=field, applied=False, reason="unknown_field"))
                continue
            if field not in OVERRIDE_FIELDS:
                outcomes.append(FieldApplyOutcome(field=field, applied=False, reason="not_applicable"))
                continue
            value = values[field]
            if field in LIST_OVERRIDE_FIELDS:
                value = [v.strip() for v in value or [] if v and v.strip()]
            elif isinstance(value, str):
                value = value.strip()
            if not value:
                outcomes.append(FieldApplyOutcome(field=field, applied=False, reason="no_provider_value"))
                continue
            self.store.set_override(person_id, field, value)
            outcomes.append(FieldApplyOutcome(field=field, applied=True, value=value))

        logger.info(
            "apply.provider_values",
            person_id=person_id,
            provider=provider.value,
            applied=[o.field for o in outcomes if o.applied],
            rejected=[o.field for o in outcomes if not o.applied],
        )
        return outcomes
