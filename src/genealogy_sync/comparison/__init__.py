"""Field comparison and per-person comparison reports."""

from .builder import ComparisonBuilder
from .field_comparator import COMPARISON_FIELDS, ComparisonField, classify, compare_field, normalize

__all__ = [
    "COMPARISON_FIELDS",
    "ComparisonBuilder",
    "ComparisonField",
    "classify",
    "compare_field",
    "normalize",
]
