"""File-backed provider snapshots."""

from .gedcomx import gedcomx_to_scraped, is_raw_gedcomx
from .provider_cache import ProviderCache

__all__ = ["ProviderCache", "gedcomx_to_scraped", "is_raw_gedcomx"]
