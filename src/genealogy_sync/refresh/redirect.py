"""Redirect (merge) handling.

When a provider reports that a requested ID now resolves to a different
person ID, the cache and the identity map move to the new ID in this order:

1. write the cache entry under the new ID
2. delete the cache entry under the old ID
3. register the new mapping, keeping confidence and falling back to the old URL
4. remove the old mapping

The cache is written before any mapping changes, so a reader that resolves a
mapping never finds it pointing at a missing cache entry.
"""
from __future__ import annotations

import structlog

from ..cache.provider_cache import ProviderCache
from ..identity.identity_map import IdentityMap
from ..models.provider import ExternalIdentity, Provider, ProviderCacheEntry

logger = structlog.get_logger(__name__)


def apply_redirect(
    cache: ProviderCache,
    identity_map: IdentityMap,
    provider: Provider,
    old_id: str,
    entry: ProviderCacheEntry,
    person_id: str | None = None,
) -> ExternalIdentity | None:
    """Move cache and mapping from ``old_id`` to ``entry.external_id``.

    Returns the new mapping, or None when neither ``person_id`` nor an
    existing mapping for ``old_id`` names a canonical person.
    """
    new_id = entry.external_id
    if new_id == old_id:
        raise ValueError("redirect target equals source id")

    previous = identity_map.get(provider, old_id)
    owner = person_id or (previous.person_id if previous else None)
    if owner and entry.person_id is None:
        entry = entry.model_copy(update={"person_id": owner})

    cache.save(entry)
    cache.delete(provider, old_id)

    if owner is None:
        logger.info("redirect.cache_only", provider=provider.value, old_id=old_id, new_id=new_id)
        return None

    identity = identity_map.register(
        owner,
        provider,
        new_id,
        url=entry.source_url or (previous.url if previous else None),
        confidence=previous.confidence if previous else 1.0,
    )
    identity_map.remove(provider, old_id)
    logger.info(
        "redirect.applied",
        provider=provider.value,
        person_id=owner,
        old_id=old_id,
        new_id=new_id,
    )
    return identity
