"""FamilySearch Family Tree API fetcher.

Fetches ``/platform/tree/persons/{id}`` as GEDCOM X and converts it to the
snapshot shape. Merged persons are followed through the API's redirect; the
returned person ID then differs from the requested one.
"""
from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from ..cache.gedcomx import FAMILYSEARCH_PERSON_URL, gedcomx_to_scraped, primary_person
from ..config import CONFIG
from ..errors import NotAuthenticatedError, PersonNotFoundError, ProviderFetchError
from ..models.provider import Provider
from ..net import GUARDS, CircuitBreaker
from .base import FetchResult

logger = structlog.get_logger(__name__)

GEDCOMX_ACCEPT = "application/x-gedcomx-v1+json, application/json"
USER_AGENT = "genealogy-sync/0.1"


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class FamilySearchFetcher:
    """Bearer-token FamilySearch person fetcher.

    Example:
        async with FamilySearchFetcher(access_token=token) as fetcher:
            result = await fetcher.fetch("KWCB-XYZ")
            if result.redirected:
                ...
    """

    provider = Provider.FAMILYSEARCH

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        breaker: CircuitBreaker | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.access_token = access_token if access_token is not None else CONFIG.familysearch_access_token
        self.base_url = (base_url or CONFIG.familysearch_base_url).rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self.breaker = breaker or GUARDS.get_breaker(self.provider)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT, "Accept": GEDCOMX_ACCEPT},
            )
        return self._client

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=0.5, max=4.0),
        retry=retry_if_exception(_is_transient),
    )
    async def _get(self, external_id: str) -> httpx.Response:
        response = await self._http().get(
            f"{self.base_url}/platform/tree/persons/{external_id}",
            headers={"Authorization": f"Bearer {self.access_token}", "Accept": GEDCOMX_ACCEPT},
            follow_redirects=True,
        )
        if response.status_code in (401, 403, 404):
            return response
        response.raise_for_status()
        return response

    async def fetch(self, external_id: str) -> FetchResult:
        if not self.is_authenticated:
            raise NotAuthenticatedError(self.provider.value, external_id)
        if not self.breaker.allow_call():
            raise ProviderFetchError(self.provider.value, external_id, reason="circuit open")

        try:
            response = await self._get(external_id)
        except httpx.HTTPStatusError as e:
            self.breaker.record_failure()
            raise ProviderFetchError(
                self.provider.value, external_id, reason="request failed", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            self.breaker.record_failure()
            raise ProviderFetchError(self.provider.value, external_id, reason=f"request failed: {e}") from e

        self.breaker.record_success()
        if response.status_code in (401, 403):
            raise NotAuthenticatedError(self.provider.value, external_id, status_code=response.status_code)
        if response.status_code == 404:
            raise PersonNotFoundError(self.provider.value, external_id, status_code=404)

        try:
            payload: dict[str, Any] = response.json()
        except ValueError as e:
            raise ProviderFetchError(self.provider.value, external_id, reason="invalid JSON") from e

        person = primary_person(payload)
        if person is None:
            raise PersonNotFoundError(self.provider.value, external_id, reason="no person in response")
        current_id = person.get("id") or external_id
        if current_id != external_id:
            logger.info("familysearch.redirect", requested=external_id, current=current_id)

        return FetchResult(
            requested_id=external_id,
            external_id=current_id,
            data=gedcomx_to_scraped(payload, current_id),
            source_url=FAMILYSEARCH_PERSON_URL.format(id=current_id),
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> FamilySearchFetcher:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
