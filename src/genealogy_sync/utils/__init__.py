"""Utility modules for genealogy data processing."""

from .normalize import (
    MONTH_NAMES,
    expand_month_abbreviations,
    is_date_like,
    names_match,
    normalize_for_comparison,
    normalize_list,
    strip_diacritics,
)

__all__ = [
    "MONTH_NAMES",
    "expand_month_abbreviations",
    "is_date_like",
    "names_match",
    "normalize_for_comparison",
    "normalize_list",
    "strip_diacritics",
]
