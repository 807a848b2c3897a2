"""Local canonical person store."""

from .base import LocalStore
from .sqlite_store import SQLiteLocalStore, StoreRegistry

__all__ = ["LocalStore", "SQLiteLocalStore", "StoreRegistry"]
