"""Read interface the reconciliation core needs from the local store."""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..models.person import CanonicalPerson, LocalOverride, ParentEdge


@runtime_checkable
class LocalStore(Protocol):
    """Read-only accessors over one local genealogy database."""

    def get_person(self, person_id: str) -> CanonicalPerson | None:
        """Return the base record (no overrides applied), or None."""
        ...

    def get_parent_edges(self, person_id: str) -> list[ParentEdge]:
        """Return the person's parent edges, father first, then mother."""
        ...

    def get_overrides(self, person_id: str) -> dict[str, LocalOverride]:
        """Return the person's user overrides keyed by field."""
        ...
