"""Comparison report, parent link suggestion and apply outcome models."""
from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from .person import ParentRole
from .provider import Provider

T = TypeVar("T")


class ComparisonStatus(str, Enum):
    """Outcome of comparing one field's local value with one provider's value."""

    MATCH = "match"
    DIFFERENT = "different"
    MISSING_LOCAL = "missing_local"  # Provider has data the local record lacks
    MISSING_PROVIDER = "missing_provider"  # Local data the provider lacks


class ProviderFieldValue(BaseModel):
    value: str | None = None
    status: ComparisonStatus
    last_scraped_at: datetime | None = None
    url: str | None = Field(default=None, description="Provider page for parent fields")


class FieldComparisonRow(BaseModel):
    """One tracked field across the local record and every provider."""

    field: str
    label: str
    local_value: str | None = None
    provider_values: dict[Provider, ProviderFieldValue] = Field(default_factory=dict)


class ProviderLinkInfo(BaseModel):
    provider: Provider
    is_linked: bool = False
    external_id: str | None = None
    url: str | None = None
    last_scraped_at: datetime | None = None


class ComparisonSummary(BaseModel):
    total_fields: int = 0
    matching_fields: int = 0
    differing_fields: int = 0
    missing_on_providers: dict[Provider, list[str]] = Field(
        default_factory=dict, description="Fields the local record has but a linked provider lacks"
    )


class ComparisonReport(BaseModel):
    person_id: str
    display_name: str = ""
    providers: list[ProviderLinkInfo] = Field(default_factory=list)
    fields: list[FieldComparisonRow] = Field(default_factory=list)
    summary: ComparisonSummary = Field(default_factory=ComparisonSummary)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def row(self, field: str) -> FieldComparisonRow | None:
        for r in self.fields:
            if r.field == field:
                return r
        return None


class ParentLinkSuggestion(BaseModel):
    """A proposed identity link for a local parent. Committed only by an apply call."""

    child_id: str
    local_parent_id: str
    role: ParentRole
    provider: Provider
    external_id: str
    confidence: float = Field(ge=0.0, le=1.0)
    url: str | None = None
    local_name: str | None = None
    provider_name: str | None = None
    name_match: bool = False


class SkipReason(str, Enum):
    ALREADY_LINKED = "already_linked"
    NO_LOCAL_PARENT = "no_local_parent"
    NO_PROVIDER_PARENT = "no_provider_parent"
    PROVIDER_ID_TAKEN = "provider_id_taken"
    NO_CACHE = "no_cache"
    NOT_LINKED = "not_linked"


class SkippedParent(BaseModel):
    role: ParentRole
    reason: SkipReason
    local_parent_id: str | None = None
    external_id: str | None = None


class ParentLinkResult(BaseModel):
    child_id: str
    provider: Provider
    suggestions: list[ParentLinkSuggestion] = Field(default_factory=list)
    skipped: list[SkippedParent] = Field(default_factory=list)


class AncestorLinkResult(BaseModel):
    """Parent link suggestions gathered across a root person's ancestors."""

    root_id: str
    provider: Provider
    persons_visited: int = 0
    generations_traversed: int = 0
    total_suggested: int = 0
    total_skipped: int = 0
    results: list[ParentLinkResult] = Field(default_factory=list)

    @property
    def suggestions(self) -> list[ParentLinkSuggestion]:
        return [s for r in self.results for s in r.suggestions]


class FieldApplyOutcome(BaseModel):
    """Per-field result of copying a provider value into the local record."""

    field: str
    applied: bool
    value: str | list[str] | None = None
    reason: str | None = None


class Envelope(BaseModel, Generic[T]):
    """Success/failure wrapper returned by every facade operation."""

    success: bool
    data: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: T) -> Envelope[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> Envelope[T]:
        return cls(success=False, error=error)
