"""Pydantic data models."""

from .comparison import (
    AncestorLinkResult,
    ComparisonReport,
    ComparisonStatus,
    ComparisonSummary,
    Envelope,
    FieldApplyOutcome,
    FieldComparisonRow,
    ParentLinkResult,
    ParentLinkSuggestion,
    ProviderFieldValue,
    ProviderLinkInfo,
    SkippedParent,
    SkipReason,
)
from .person import CanonicalPerson, LocalOverride, ParentEdge, ParentRole, VitalEvent
from .provider import (
    ExternalIdentity,
    Provider,
    ProviderCacheEntry,
    RateLimitWindow,
    ScrapedPersonData,
)
from .sync import (
    HintResult,
    ProgressEvent,
    ProgressEventType,
    QueuedPerson,
    SyncStats,
    SyncStatus,
    SyncStep,
)

__all__ = [
    "CanonicalPerson",
    "VitalEvent",
    "ParentEdge",
    "ParentRole",
    "LocalOverride",
    "Provider",
    "ExternalIdentity",
    "ScrapedPersonData",
    "ProviderCacheEntry",
    "RateLimitWindow",
    "ComparisonStatus",
    "ComparisonReport",
    "ComparisonSummary",
    "FieldComparisonRow",
    "ProviderFieldValue",
    "ProviderLinkInfo",
    "ParentLinkSuggestion",
    "ParentLinkResult",
    "AncestorLinkResult",
    "SkippedParent",
    "SkipReason",
    "FieldApplyOutcome",
    "Envelope",
    "ProgressEvent",
    "ProgressEventType",
    "SyncStep",
    "SyncStats",
    "QueuedPerson",
    "SyncStatus",
    "HintResult",
]
