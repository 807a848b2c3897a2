"""Genealogy Sync - cross-provider identity reconciliation for genealogy records.

Keeps one locally owned canonical person record, maps it to the IDs used by
FamilySearch, Ancestry, WikiTree and 23andMe, compares the record field by
field against cached provider snapshots, and walks the ancestor graph to keep
those snapshots fresh.
"""

__version__ = "0.1.0"

# Lazy imports to avoid circular dependencies
def __getattr__(name: str):
    if name == "models":
        from genealogy_sync import models
        return models
    if name == "ReconciliationService":
        from genealogy_sync.service import ReconciliationService
        return ReconciliationService
    if name == "CONFIG":
        from genealogy_sync.config import CONFIG
        return CONFIG
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
