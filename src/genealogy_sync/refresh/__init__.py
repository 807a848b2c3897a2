"""Provider refresh: fetch, cache, and follow provider-side merges."""

from .redirect import apply_redirect
from .refresher import ProviderRefresher

__all__ = ["ProviderRefresher", "apply_redirect"]
