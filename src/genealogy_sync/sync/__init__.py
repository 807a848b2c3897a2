"""Bounded breadth-first sync over the local ancestor graph."""

from .operations import Operation, OperationRegistry
from .orchestrator import SyncOrchestrator, SyncRun
from .queue import build_queue, resolve_generations

__all__ = [
    "Operation",
    "OperationRegistry",
    "SyncOrchestrator",
    "SyncRun",
    "build_queue",
    "resolve_generations",
]
