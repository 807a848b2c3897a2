"""Pure classification of one field's local value against one provider value.

Status rules, applied to normalized values:

    both empty                      -> match
    local empty                     -> missing_local
    provider empty                  -> missing_provider
    equal                           -> match
    provider strictly contains local -> different  (more detail upstream)
    local contains provider         -> match      (local already has it)
    otherwise                       -> different

The containment rules are intentionally asymmetric: a more specific provider
value is something the operator may want to pull in, while a more specific
local value needs no action. Containment only counts whole words, so "male"
is not inside "female" and "1 march 1933" is not inside "11 march 1933".
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from ..models.comparison import ComparisonStatus
from ..utils.normalize import normalize_for_comparison, normalize_list


@dataclass(frozen=True)
class ComparisonField:
    name: str
    label: str
    is_array: bool = False


COMPARISON_FIELDS: tuple[ComparisonField, ...] = (
    ComparisonField("name", "Name"),
    ComparisonField("gender", "Gender"),
    ComparisonField("birth_date", "Birth Date"),
    ComparisonField("birth_place", "Birth Place"),
    ComparisonField("death_date", "Death Date"),
    ComparisonField("death_place", "Death Place"),
    ComparisonField("alternate_names", "Alternate Names", is_array=True),
    ComparisonField("father_name", "Father"),
    ComparisonField("mother_name", "Mother"),
    ComparisonField("children_count", "Children"),
    ComparisonField("occupations", "Occupations", is_array=True),
)

FIELDS_BY_NAME = {f.name: f for f in COMPARISON_FIELDS}


def normalize(value: str | list[str] | None) -> str:
    """Normalize a scalar or list value to a comparable string."""
    if isinstance(value, (list, tuple)):
        return normalize_for_comparison(normalize_list(value))
    return normalize_for_comparison(value)


def contains_words(outer: str, inner: str) -> bool:
    """True when ``inner`` occurs in ``outer`` bounded by non-word characters."""
    return re.search(rf"(?<!\w){re.escape(inner)}(?!\w)", outer) is not None


def classify(local: str | list[str] | None, provider: str | list[str] | None) -> ComparisonStatus:
    """Classify a local value against a provider value."""
    a = normalize(local)
    b = normalize(provider)

    if not a and not b:
        return ComparisonStatus.MATCH
    if not a:
        return ComparisonStatus.MISSING_LOCAL
    if not b:
        return ComparisonStatus.MISSING_PROVIDER
    if a == b:
        return ComparisonStatus.MATCH
    if contains_words(b, a):
        return ComparisonStatus.DIFFERENT
    if contains_words(a, b):
        return ComparisonStatus.MATCH
    return ComparisonStatus.DIFFERENT


def display_value(value: str | list[str] | int | None) -> str | None:
    """Render a field value for a report row; lists join in their given order."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        items = [v.strip() for v in value if v and v.strip()]
        return ", ".join(items) or None
    text = str(value).strip()
    return text or None


def compare_field(
    field: str, local: str | list[str] | int | None, provider: str | list[str] | int | None
) -> ComparisonStatus:
    """Classify a named field, flattening list fields before comparison.

    Raises:
        KeyError: if ``field`` is not a tracked comparison field.
    """
    spec = FIELDS_BY_NAME[field]
    if spec.is_array:
        return classify(_as_list(local), _as_list(provider))
    return classify(_as_text(local), _as_text(provider))


def _as_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _as_text(value) -> str | None:
    if value is None:
        return None
    return str(value)
