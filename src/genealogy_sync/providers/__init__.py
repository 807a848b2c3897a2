"""Provider fetchers used by the refresh layer."""

from .base import FetchResult, ProviderFetcher
from .familysearch import FamilySearchFetcher

__all__ = ["FamilySearchFetcher", "FetchResult", "ProviderFetcher"]
