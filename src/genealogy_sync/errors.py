"""Exception taxonomy.

Transient provider failures (``ProviderFetchError`` and subclasses) are caught
where they happen and counted. Data-shape failures (``CacheFormatError``) are
logged and mean "no data". Configuration failures (``SessionUnavailableError``,
``PersonMissingError``, ``SyncAlreadyRunningError``) end a sync run with an
``error`` event.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class GenealogySyncError(Exception):
    """Base class for all package errors."""


@dataclass
class ProviderFetchError(GenealogySyncError):
    """A provider round-trip failed."""

    provider: str
    external_id: str
    reason: str = "fetch failed"
    status_code: int | None = None

    def __str__(self) -> str:
        base = f"{self.provider}/{self.external_id}: {self.reason}"
        if self.status_code is not None:
            base += f" (status={self.status_code})"
        return base


@dataclass
class NotAuthenticatedError(ProviderFetchError):
    reason: str = "not authenticated"


@dataclass
class PersonNotFoundError(ProviderFetchError):
    reason: str = "person not found on provider"


@dataclass
class CacheFormatError(GenealogySyncError):
    """A cache file could not be decoded into a known shape."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"


@dataclass
class SyncAlreadyRunningError(GenealogySyncError):
    db_id: str
    operation_id: str | None = None

    def __str__(self) -> str:
        return f"A sync operation is already running for {self.db_id} ({self.operation_id})"


@dataclass
class SessionUnavailableError(GenealogySyncError):
    reason: str = "provider session unavailable"

    def __str__(self) -> str:
        return self.reason


@dataclass
class PersonMissingError(GenealogySyncError):
    db_id: str
    person_id: str

    def __str__(self) -> str:
        return f"Person {self.person_id} not found in database {self.db_id}"


@dataclass
class LinkRejectedError(GenealogySyncError):
    """An apply action refused to write an identity link."""

    reason: str

    def __str__(self) -> str:
        return self.reason


@dataclass
class DatabaseNotFoundError(GenealogySyncError):
    db_id: str

    def __str__(self) -> str:
        return f"Database {self.db_id} not found"
