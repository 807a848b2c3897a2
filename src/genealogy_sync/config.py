from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .models.provider import Provider, RateLimitWindow


def _f(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except Exception:
        return default


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except Exception:
        return default


def _s(name: str, default: str | None) -> str | None:
    value = os.getenv(name)
    return value if value else default


# Delay windows between provider requests, in milliseconds
PROVIDER_DEFAULTS: dict[Provider, tuple[int, int]] = {
    Provider.FAMILYSEARCH: (500, 1500),
    Provider.ANCESTRY: (1000, 3000),
    Provider.TWENTYTHREEANDME: (1000, 3000),
    Provider.WIKITREE: (500, 1500),
}


def _env_prefix(provider: Provider) -> str:
    if provider is Provider.TWENTYTHREEANDME:
        return "TWENTYTHREEANDME"
    return provider.value.upper()


def _rate_limits() -> dict[Provider, RateLimitWindow]:
    windows = {}
    for provider, (lo, hi) in PROVIDER_DEFAULTS.items():
        prefix = _env_prefix(provider)
        windows[provider] = RateLimitWindow(
            min_delay_ms=_i(f"{prefix}_MIN_DELAY_MS", lo),
            max_delay_ms=_i(f"{prefix}_MAX_DELAY_MS", hi),
        )
    return windows


@dataclass(frozen=True)
class SyncConfig:
    data_dir: Path = Path(_s("GENEALOGY_SYNC_DATA_DIR", "./data"))

    # Provider cache entries older than this are refreshed during sync
    stale_days: int = _i("GENEALOGY_SYNC_STALE_DAYS", 30)

    # "full" traversal is capped at this many generations
    full_generation_cap: int = _i("GENEALOGY_SYNC_FULL_GENERATIONS", 100)

    # Applied parent links need at least this confidence
    link_threshold: float = _f("GENEALOGY_SYNC_LINK_THRESHOLD", 0.7)

    identity_cache_size: int = _i("GENEALOGY_SYNC_IDENTITY_CACHE", 10_000)

    familysearch_base_url: str = _s("FAMILYSEARCH_BASE_URL", "https://api.familysearch.org")
    familysearch_access_token: str | None = _s("FAMILYSEARCH_ACCESS_TOKEN", None)

    rate_limits: dict[Provider, RateLimitWindow] = field(default_factory=_rate_limits)

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "provider-cache"

    @property
    def identity_db_path(self) -> Path:
        return self.data_dir / "sync.db"

    def store_path(self, db_id: str) -> Path:
        return self.data_dir / f"{db_id}.db"

    def rate_limit(self, provider: Provider) -> RateLimitWindow:
        return self.rate_limits.get(provider, RateLimitWindow())


CONFIG = SyncConfig()
