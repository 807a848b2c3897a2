"""Parent link suggestions."""

from .parent_linkage import LINK_CONFIDENCE_NAME_MATCH, LINK_CONFIDENCE_POSITION, ParentLinkageResolver
from .urls import build_provider_url, extract_ancestry_tree_id

__all__ = [
    "LINK_CONFIDENCE_NAME_MATCH",
    "LINK_CONFIDENCE_POSITION",
    "ParentLinkageResolver",
    "build_provider_url",
    "extract_ancestry_tree_id",
]
