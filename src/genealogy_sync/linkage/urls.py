from __future__ import annotations

import re

from ..models.provider import Provider

_ANCESTRY_TREE_RE = re.compile(r"/tree/(\d+)/")


def extract_ancestry_tree_id(url: str | None) -> str | None:
    """Tree ID from an Ancestry person URL, e.g. ``.../tree/12345/person/678/facts``."""
    if not url:
        return None
    m = _ANCESTRY_TREE_RE.search(url)
    return m.group(1) if m else None


def build_provider_url(provider: Provider, external_id: str, tree_id: str | None = None) -> str | None:
    """Person page URL on a provider, or None when it cannot be built.

    Ancestry person pages live inside a tree, so they need ``tree_id``.
    """
    provider = Provider(provider)
    if provider is Provider.FAMILYSEARCH:
        return f"https://www.familysearch.org/tree/person/details/{external_id}"
    if provider is Provider.WIKITREE:
        return f"https://www.wikitree.com/wiki/{external_id}"
    if provider is Provider.ANCESTRY and tree_id:
        return f"https://www.ancestry.com/family-tree/person/tree/{tree_id}/person/{external_id}/facts"
    return None
