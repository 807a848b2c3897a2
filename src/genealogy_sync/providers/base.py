"""Interface for fetching one person's data from a provider."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ..models.provider import Provider, ScrapedPersonData


@dataclass
class FetchResult:
    """One provider round-trip.

    ``external_id`` is the ID the provider reports for the returned person; it
    differs from ``requested_id`` when the provider merged the requested
    record into another one.
    """

    requested_id: str
    external_id: str
    data: ScrapedPersonData
    source_url: str | None = None

    @property
    def redirected(self) -> bool:
        return self.external_id != self.requested_id


@runtime_checkable
class ProviderFetcher(Protocol):
    """Protocol every provider fetcher implements."""

    provider: Provider

    async def fetch(self, external_id: str) -> FetchResult:
        """Fetch a person.

        Raises:
            NotAuthenticatedError: the session is missing or expired.
            PersonNotFoundError: the provider has no such person.
            ProviderFetchError: any other failure after retries.
        """
        ...

    async def aclose(self) -> None:
        ...
