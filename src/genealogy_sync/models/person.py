"""Locally owned person records and user overrides."""
from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class VitalEvent(BaseModel):
    """Birth or death: free-text date and place as recorded."""

    date: str | None = None
    place: str | None = None


class ParentRole(str, Enum):
    FATHER = "father"
    MOTHER = "mother"
    PARENT = "parent"


class ParentEdge(BaseModel):
    parent_id: str
    child_id: str
    role: ParentRole = ParentRole.PARENT


class CanonicalPerson(BaseModel):
    """The single locally owned identity a genealogy record is keyed by.

    Only explicit user edits and explicit apply actions change it; background
    refreshes never do.
    """

    id: str
    display_name: str = Field(default="", description="Primary name as recorded locally")
    living: bool = False
    gender: str | None = None
    birth: VitalEvent | None = None
    death: VitalEvent | None = None
    parent_ids: list[str] = Field(
        default_factory=list, max_length=2, description="Ordered father, mother"
    )
    child_ids: list[str] = Field(default_factory=list)
    occupations: list[str] = Field(default_factory=list)
    alternate_names: list[str] = Field(default_factory=list)


OVERRIDE_FIELDS = (
    "name",
    "gender",
    "birth_date",
    "birth_place",
    "death_date",
    "death_place",
    "alternate_names",
    "occupations",
)

LIST_OVERRIDE_FIELDS = frozenset({"alternate_names", "occupations"})


class LocalOverride(BaseModel):
    """A user edit to one field of a person; always wins over the base record."""

    person_id: str
    field: str = Field(description="One of OVERRIDE_FIELDS")
    value: Any = Field(description="str for scalar fields, list[str] for list fields")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
