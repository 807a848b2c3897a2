"""SQLite-backed bidirectional identity map.

Each row maps one (provider, external_id) to one canonical person. The table
enforces both uniqueness rules: a (provider, external_id) pair belongs to at
most one person, and a person has at most one external ID per provider.
"""
from __future__ import annotations

import sqlite3
from collections import OrderedDict
from collections.abc import Iterable
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

import structlog

from ..models.provider import ExternalIdentity, Provider

logger = structlog.get_logger(__name__)

# Order tried by resolve_any when the caller does not name a provider
RESOLVE_ORDER: tuple[Provider, ...] = (
    Provider.FAMILYSEARCH,
    Provider.ANCESTRY,
    Provider.WIKITREE,
    Provider.TWENTYTHREEANDME,
)


class _BoundedCache(OrderedDict):
    """Insertion-ordered dict that drops its oldest entry when full."""

    def __init__(self, max_size: int) -> None:
        super().__init__()
        self.max_size = max_size

    def put(self, key, value) -> None:
        if key in self:
            self.move_to_end(key)
        self[key] = value
        while len(self) > self.max_size:
            self.popitem(last=False)


class IdentityMap:
    """Bidirectional (person_id <-> provider, external_id) store.

    Lookups that miss return None; "not linked" is a normal state. ``register``
    does not check that the canonical person exists, so links can be recorded
    before the full person record is imported.
    """

    def __init__(self, db_path: str | Path, cache_size: int = 10_000) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._by_external: _BoundedCache = _BoundedCache(cache_size)
        self._by_person: _BoundedCache = _BoundedCache(cache_size)
        self._init_schema()

    @contextmanager
    def _get_conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA busy_timeout=5000;")
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._get_conn() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS external_identity (
                    provider TEXT NOT NULL,
                    external_id TEXT NOT NULL,
                    person_id TEXT NOT NULL,
                    url TEXT,
                    confidence REAL NOT NULL DEFAULT 1.0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (provider, external_id),
                    UNIQUE (person_id, provider)
                );
                CREATE INDEX IF NOT EXISTS idx_external_identity_person ON external_identity(person_id);
                """
            )
            conn.commit()

    def _invalidate(self) -> None:
        self._by_external.clear()
        self._by_person.clear()

    # --------------------------- Lookups ---------------------------

    def resolve(self, external_id: str, provider: Provider | str) -> str | None:
        """Canonical person ID for a provider's external ID, or None."""
        provider = Provider(provider)
        key = (provider, external_id)
        if key in self._by_external:
            return self._by_external[key]
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT person_id FROM external_identity WHERE provider = ? AND external_id = ?",
                (provider.value, external_id),
            ).fetchone()
        if row is None:
            return None
        self._by_external.put(key, row["person_id"])
        return row["person_id"]

    def get_external_id(self, person_id: str, provider: Provider | str) -> str | None:
        """The person's external ID on a provider, or None."""
        provider = Provider(provider)
        key = (person_id, provider)
        if key in self._by_person:
            return self._by_person[key]
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT external_id FROM external_identity WHERE person_id = ? AND provider = ?",
                (person_id, provider.value),
            ).fetchone()
        if row is None:
            return None
        self._by_person.put(key, row["external_id"])
        return row["external_id"]

    def get(self, provider: Provider | str, external_id: str) -> ExternalIdentity | None:
        provider = Provider(provider)
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM external_identity WHERE provider = ? AND external_id = ?",
                (provider.value, external_id),
            ).fetchone()
        return _row_to_identity(row) if row else None

    def get_for_person(self, person_id: str, provider: Provider | str) -> ExternalIdentity | None:
        provider = Provider(provider)
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM external_identity WHERE person_id = ? AND provider = ?",
                (person_id, provider.value),
            ).fetchone()
        return _row_to_identity(row) if row else None

    def resolve_any(
        self, external_id: str, providers: Iterable[Provider] | None = None
    ) -> tuple[Provider, str] | None:
        """Try each provider in order; first hit wins."""
        for provider in providers or RESOLVE_ORDER:
            person_id = self.resolve(external_id, provider)
            if person_id:
                return provider, person_id
        return None

    def batch_resolve(self, external_ids: Iterable[str], provider: Provider | str) -> dict[str, str]:
        """Map each known external ID to its person ID; unknown IDs are omitted."""
        provider = Provider(provider)
        ids = list(dict.fromkeys(external_ids))
        if not ids:
            return {}
        result: dict[str, str] = {}
        # SQLite caps bound parameters; chunk the IN clause
        for start in range(0, len(ids), 500):
            chunk = ids[start : start + 500]
            placeholders = ",".join("?" for _ in chunk)
            with self._get_conn() as conn:
                rows = conn.execute(
                    f"SELECT external_id, person_id FROM external_identity "
                    f"WHERE provider = ? AND external_id IN ({placeholders})",
                    (provider.value, *chunk),
                ).fetchall()
            for row in rows:
                result[row["external_id"]] = row["person_id"]
        return result

    def all_for_person(self, person_id: str) -> list[ExternalIdentity]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM external_identity WHERE person_id = ? ORDER BY provider",
                (person_id,),
            ).fetchall()
        return [_row_to_identity(r) for r in rows]

    def all(self) -> list[ExternalIdentity]:
        with self._get_conn() as conn:
            rows = conn.execute("SELECT * FROM external_identity ORDER BY provider, external_id").fetchall()
        return [_row_to_identity(r) for r in rows]

    # --------------------------- Writes ---------------------------

    def register(
        self,
        person_id: str,
        provider: Provider | str,
        external_id: str,
        url: str | None = None,
        confidence: float = 1.0,
    ) -> ExternalIdentity:
        """Upsert a mapping.

        Any other external ID the person had on this provider is replaced, and
        an existing owner of (provider, external_id) is re-pointed at
        ``person_id``. Last write wins.
        """
        provider = Provider(provider)
        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {confidence}")
        now = datetime.now(UTC).isoformat()
        with self._get_conn() as conn:
            replaced = conn.execute(
                "DELETE FROM external_identity WHERE person_id = ? AND provider = ? AND external_id != ?",
                (person_id, provider.value, external_id),
            ).rowcount
            conn.execute(
                """
                INSERT INTO external_identity
                    (provider, external_id, person_id, url, confidence, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(provider, external_id) DO UPDATE SET
                    person_id = excluded.person_id,
                    url = excluded.url,
                    confidence = excluded.confidence,
                    updated_at = excluded.updated_at
                """,
                (provider.value, external_id, person_id, url, confidence, now, now),
            )
            conn.commit()
        self._invalidate()
        logger.info(
            "identity.register",
            person_id=person_id,
            provider=provider.value,
            external_id=external_id,
            confidence=confidence,
            replaced=replaced,
        )
        identity = self.get(provider, external_id)
        assert identity is not None
        return identity

    def remove(self, provider: Provider | str, external_id: str) -> bool:
        """Delete one mapping. Used when a provider redirects an old ID to a new one."""
        provider = Provider(provider)
        with self._get_conn() as conn:
            deleted = conn.execute(
                "DELETE FROM external_identity WHERE provider = ? AND external_id = ?",
                (provider.value, external_id),
            ).rowcount
            conn.commit()
        self._invalidate()
        if deleted:
            logger.info("identity.remove", provider=provider.value, external_id=external_id)
        return bool(deleted)


def _row_to_identity(row: sqlite3.Row) -> ExternalIdentity:
    return ExternalIdentity(
        person_id=row["person_id"],
        provider=Provider(row["provider"]),
        external_id=row["external_id"],
        url=row["url"],
        confidence=row["confidence"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
