"""Normalization utilities for comparing genealogical values.

Provides the string normalization the field comparator and the parent
name matcher share, so that formatting differences between providers
(casing, spacing, month abbreviations, accents) do not read as conflicts.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

# Month name mappings
MONTH_NAMES = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

FULL_MONTHS = {
    1: "january", 2: "february", 3: "march", 4: "april",
    5: "may", 6: "june", 7: "july", 8: "august",
    9: "september", 10: "october", 11: "november", 12: "december",
}

# Delimiter used when flattening list fields to a single comparable string
LIST_DELIMITER = "; "

_WORD_RE = re.compile(r"[a-z]+")
_MONTH_TOKEN_RE = re.compile(
    r"\b(" + "|".join(sorted(MONTH_NAMES, key=len, reverse=True)) + r")\b\.?"
)


def collapse_whitespace(value: str) -> str:
    return " ".join(value.split())


def is_date_like(value: str) -> bool:
    """True when the value has a month token and at least one digit.

    "29 aug 1933" is date-like; "May Smith" and "Jan" alone are not.
    """
    lowered = value.lower()
    if not any(ch.isdigit() for ch in lowered):
        return False
    return any(word in MONTH_NAMES for word in _WORD_RE.findall(lowered))


def expand_month_abbreviations(value: str) -> str:
    """Replace month abbreviations with full lowercase month names.

    Expects an already lowercased value. "29 aug. 1933" -> "29 august 1933".
    """
    return _MONTH_TOKEN_RE.sub(lambda m: FULL_MONTHS[MONTH_NAMES[m.group(1)]], value)


def normalize_for_comparison(value: str | None) -> str:
    """Lowercase, trim and collapse whitespace; expand months in date-like values.

    Returns "" for None and whitespace-only input, so emptiness checks are a
    plain truthiness test.
    """
    if not value:
        return ""
    result = collapse_whitespace(value.lower())
    if result and is_date_like(result):
        result = expand_month_abbreviations(result)
    return result


def normalize_list(values: Iterable[str] | None) -> str:
    """Flatten a list field so order and casing do not affect comparison.

    Elements are trimmed, empties dropped, sorted case-insensitively and
    joined with LIST_DELIMITER.
    """
    if not values:
        return ""
    cleaned = [v.strip() for v in values if v and v.strip()]
    cleaned.sort(key=str.casefold)
    return LIST_DELIMITER.join(cleaned)


def strip_diacritics(value: str) -> str:
    """Remove combining accents: "José Müller" -> "Jose Muller"."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(value: str | None) -> str:
    """Comparison normalization plus diacritic stripping, for person names."""
    return strip_diacritics(normalize_for_comparison(value))


def names_match(name1: str | None, name2: str | None) -> bool:
    """Loose name match used when linking parents across providers.

    Names match when equal after normalization, when one contains the other,
    or when their last tokens (surnames) agree and are longer than 2 characters.
    Provider-reported parent names are often truncated or reordered, so this
    is deliberately more permissive than field comparison.
    """
    n1 = normalize_name(name1)
    n2 = normalize_name(name2)
    if not n1 or not n2:
        return False
    if n1 == n2:
        return True
    if n1 in n2 or n2 in n1:
        return True
    last1 = n1.split()[-1]
    last2 = n2.split()[-1]
    return last1 == last2 and len(last1) > 2
