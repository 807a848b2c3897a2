from __future__ import annotations

from pathlib import Path

import pytest

from genealogy_sync.cache.provider_cache import ProviderCache
from genealogy_sync.config import SyncConfig
from genealogy_sync.identity.identity_map import IdentityMap
from genealogy_sync.models import CanonicalPerson, VitalEvent
from genealogy_sync.storage.sqlite_store import SQLiteLocalStore, StoreRegistry


@pytest.fixture()
def config(tmp_path: Path) -> SyncConfig:
    return SyncConfig(data_dir=tmp_path / "data")


@pytest.fixture()
def identity_map(config: SyncConfig) -> IdentityMap:
    return IdentityMap(config.identity_db_path)


@pytest.fixture()
def cache(config: SyncConfig) -> ProviderCache:
    return ProviderCache(config.cache_dir)


@pytest.fixture()
def stores(config: SyncConfig) -> StoreRegistry:
    return StoreRegistry(config.data_dir)


@pytest.fixture()
def store(stores: StoreRegistry) -> SQLiteLocalStore:
    return stores.get("main")


@pytest.fixture()
def family(store: SQLiteLocalStore) -> SQLiteLocalStore:
    """Three generations: p1 -> (p2, p3) -> (p4, p5), (p6, p7)."""
    people = [
        CanonicalPerson(
            id="p1",
            display_name="John Smith",
            gender="male",
            birth=VitalEvent(date="29 AUG 1933", place="Regina, Saskatchewan, Canada"),
            occupations=["Farmer"],
            alternate_names=["Jon Smith", "Johnny Smith"],
        ),
        CanonicalPerson(id="p2", display_name="William Smith", gender="male"),
        CanonicalPerson(id="p3", display_name="Mary Jones", gender="female"),
        CanonicalPerson(id="p4", display_name="George Smith"),
        CanonicalPerson(id="p5", display_name="Ann Brown"),
        CanonicalPerson(id="p6", display_name="Thomas Jones"),
        CanonicalPerson(id="p7", display_name="Sarah White"),
    ]
    for person in people:
        store.upsert_person(person)
    store.add_parent_edge("p1", "p2", "father")
    store.add_parent_edge("p1", "p3", "mother")
    store.add_parent_edge("p2", "p4", "father")
    store.add_parent_edge("p2", "p5", "mother")
    store.add_parent_edge("p3", "p6", "father")
    store.add_parent_edge("p3", "p7", "mother")
    return store


