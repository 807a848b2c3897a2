"""Provider-side models: identities, scraped snapshots and cache entries."""
from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .person import VitalEvent


class Provider(str, Enum):
    """External genealogy providers, in comparison roster order."""

    FAMILYSEARCH = "familysearch"
    ANCESTRY = "ancestry"
    WIKITREE = "wikitree"
    TWENTYTHREEANDME = "23andme"


class RateLimitWindow(BaseModel):
    """Delay window between consecutive requests to one provider."""

    min_delay_ms: int = Field(default=500, ge=0)
    max_delay_ms: int = Field(default=1500, ge=0)

    def bounds_seconds(self) -> tuple[float, float]:
        lo = self.min_delay_ms / 1000.0
        hi = max(self.max_delay_ms, self.min_delay_ms) / 1000.0
        return lo, hi


class ExternalIdentity(BaseModel):
    """One (provider, external_id) pointing at exactly one canonical person."""

    person_id: str = Field(description="Canonical person ID")
    provider: Provider
    external_id: str
    url: str | None = Field(default=None, description="Provider page for this person")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ScrapedPersonData(BaseModel):
    """A provider's view of one person, as last fetched."""

    model_config = ConfigDict(populate_by_name=True)

    external_id: str | None = Field(default=None, alias="externalId")
    name: str | None = None
    gender: str | None = None
    birth: VitalEvent | None = None
    death: VitalEvent | None = None
    alternate_names: list[str] = Field(default_factory=list, alias="alternateNames")
    occupations: list[str] = Field(default_factory=list)
    father_external_id: str | None = Field(default=None, alias="fatherExternalId")
    father_name: str | None = Field(default=None, alias="fatherName")
    mother_external_id: str | None = Field(default=None, alias="motherExternalId")
    mother_name: str | None = Field(default=None, alias="motherName")
    children_count: int | None = Field(default=None, ge=0, alias="childrenCount")
    photo_url: str | None = Field(default=None, alias="photoUrl")
    source_url: str | None = Field(default=None, alias="sourceUrl")


class ProviderCacheEntry(BaseModel):
    """Last-fetched snapshot for one (provider, external_id).

    Stored on disk with camelCase keys. A refresh replaces the whole entry.
    """

    model_config = ConfigDict(populate_by_name=True)

    person_id: str | None = Field(default=None, alias="personId")
    provider: Provider
    external_id: str = Field(alias="externalId")
    scraped_data: ScrapedPersonData = Field(alias="scrapedData")
    scraped_at: datetime = Field(alias="scrapedAt")
    source_url: str | None = Field(default=None, alias="sourceUrl")

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
