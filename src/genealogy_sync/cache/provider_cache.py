"""Per-(provider, external_id) snapshot files.

Layout: ``<root>/<provider>/<external_id>.json``. A file holds either the
canonical snapshot (``{"scrapedData": ..., "scrapedAt": ...}``) or a raw
GEDCOM X document. ``get`` decodes both into ``ProviderCacheEntry`` so callers
never see the raw shape. Entries never expire on their own; staleness is a
question the caller asks with its own threshold.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from ..errors import CacheFormatError
from ..fs import atomic_write_json
from ..models.provider import Provider, ProviderCacheEntry
from .gedcomx import gedcomx_to_scraped, is_raw_gedcomx

logger = structlog.get_logger(__name__)


class CacheShape(str, Enum):
    SNAPSHOT = "snapshot"
    RAW_GEDCOMX = "raw_gedcomx"


@dataclass
class DecodedPayload:
    shape: CacheShape
    payload: dict[str, Any]


def detect_shape(payload: Any, path: Path) -> DecodedPayload:
    """Tag a parsed cache payload with its shape.

    Raises:
        CacheFormatError: if the payload is neither shape.
    """
    if isinstance(payload, dict) and "scrapedData" in payload:
        return DecodedPayload(CacheShape.SNAPSHOT, payload)
    if is_raw_gedcomx(payload):
        return DecodedPayload(CacheShape.RAW_GEDCOMX, payload)
    raise CacheFormatError(path, "unrecognized cache payload")


class ProviderCache:
    """File-backed provider snapshot store."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, provider: Provider | str, external_id: str) -> Path:
        provider = Provider(provider)
        if not external_id or any(sep in external_id for sep in ("/", "\\")) or external_id.startswith("."):
            raise ValueError(f"invalid external id for cache key: {external_id!r}")
        return self.root / provider.value / f"{external_id}.json"

    def get(self, provider: Provider | str, external_id: str) -> ProviderCacheEntry | None:
        """Decoded entry, or None when absent, unreadable or malformed."""
        provider = Provider(provider)
        path = self.path_for(provider, external_id)
        if not path.exists():
            return None
        try:
            return self._read(path, provider, external_id)
        except (OSError, json.JSONDecodeError, CacheFormatError, ValidationError) as e:
            logger.warning(
                "provider_cache.unreadable",
                provider=provider.value,
                external_id=external_id,
                path=str(path),
                error=str(e),
            )
            return None

    def _read(self, path: Path, provider: Provider, external_id: str) -> ProviderCacheEntry:
        payload = json.loads(path.read_text(encoding="utf-8"))
        decoded = detect_shape(payload, path)
        if decoded.shape is CacheShape.RAW_GEDCOMX:
            mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=UTC)
            scraped = gedcomx_to_scraped(decoded.payload, external_id)
            return ProviderCacheEntry(
                provider=provider,
                external_id=external_id,
                scraped_data=scraped,
                scraped_at=mtime,
                source_url=scraped.source_url,
            )
        data = dict(decoded.payload)
        data.setdefault("provider", provider.value)
        data.setdefault("externalId", external_id)
        return ProviderCacheEntry.model_validate(data)

    def save(self, entry: ProviderCacheEntry) -> Path:
        """Write the entry, replacing whatever snapshot the key held before."""
        path = self.path_for(entry.provider, entry.external_id)
        atomic_write_json(path, entry.to_json_dict())
        logger.debug(
            "provider_cache.save",
            provider=entry.provider.value,
            external_id=entry.external_id,
            scraped_at=entry.scraped_at.isoformat(),
        )
        return path

    def delete(self, provider: Provider | str, external_id: str) -> bool:
        path = self.path_for(provider, external_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("provider_cache.delete", provider=Provider(provider).value, external_id=external_id)
        return True

    def exists(self, provider: Provider | str, external_id: str) -> bool:
        return self.path_for(provider, external_id).exists()

    @staticmethod
    def is_stale(entry: ProviderCacheEntry, max_age_days: float, now: datetime | None = None) -> bool:
        now = now or datetime.now(UTC)
        scraped_at = entry.scraped_at
        if scraped_at.tzinfo is None:
            scraped_at = scraped_at.replace(tzinfo=UTC)
        return now - scraped_at > timedelta(days=max_age_days)

    def external_ids(self, provider: Provider | str) -> list[str]:
        directory = self.root / Provider(provider).value
        if not directory.is_dir():
            return []
        return sorted(p.stem for p in directory.glob("*.json"))

    def stale_entries(
        self, provider: Provider | str, max_age_days: float, now: datetime | None = None
    ) -> list[ProviderCacheEntry]:
        """Readable entries for a provider older than ``max_age_days``."""
        stale = []
        for external_id in self.external_ids(provider):
            entry = self.get(provider, external_id)
            if entry is not None and self.is_stale(entry, max_age_days, now):
                stale.append(entry)
        return stale
