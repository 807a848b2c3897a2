"""SQLite local store: canonical persons, parent edges and user overrides."""
from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from ..models.person import (
    LIST_OVERRIDE_FIELDS,
    OVERRIDE_FIELDS,
    CanonicalPerson,
    LocalOverride,
    ParentEdge,
    ParentRole,
    VitalEvent,
)

logger = structlog.get_logger(__name__)

_ROLE_ORDER = "CASE role WHEN 'father' THEN 0 WHEN 'mother' THEN 1 ELSE 2 END"


class SQLiteLocalStore:
    """One local genealogy database.

    Overrides are stored apart from the base record and layered on top by
    ``get_effective_person``; they always win.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
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
                CREATE TABLE IF NOT EXISTS person (
                    person_id TEXT PRIMARY KEY,
                    display_name TEXT NOT NULL DEFAULT '',
                    living INTEGER NOT NULL DEFAULT 0,
                    gender TEXT,
                    birth_date TEXT,
                    birth_place TEXT,
                    death_date TEXT,
                    death_place TEXT,
                    occupations_json TEXT NOT NULL DEFAULT '[]',
                    alternate_names_json TEXT NOT NULL DEFAULT '[]'
                );

                CREATE TABLE IF NOT EXISTS parent_edge (
                    parent_id TEXT NOT NULL,
                    child_id TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'parent',
                    PRIMARY KEY (parent_id, child_id)
                );
                CREATE INDEX IF NOT EXISTS idx_parent_edge_child ON parent_edge(child_id);

                CREATE TABLE IF NOT EXISTS local_override (
                    person_id TEXT NOT NULL,
                    field TEXT NOT NULL,
                    value_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (person_id, field)
                );
                """
            )
            conn.commit()

    # --------------------------- Persons ---------------------------

    def upsert_person(self, person: CanonicalPerson) -> None:
        birth = person.birth or VitalEvent()
        death = person.death or VitalEvent()
        with self._get_conn() as conn:
            conn.execute(
                """
                INSERT INTO person (
                    person_id, display_name, living, gender, birth_date, birth_place,
                    death_date, death_place, occupations_json, alternate_names_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(person_id) DO UPDATE SET
                    display_name = excluded.display_name,
                    living = excluded.living,
                    gender = excluded.gender,
                    birth_date = excluded.birth_date,
                    birth_place = excluded.birth_place,
                    death_date = excluded.death_date,
                    death_place = excluded.death_place,
                    occupations_json = excluded.occupations_json,
                    alternate_names_json = excluded.alternate_names_json
                """,
                (
                    person.id,
                    person.display_name,
                    int(person.living),
                    person.gender,
                    birth.date,
                    birth.place,
                    death.date,
                    death.place,
                    json.dumps(person.occupations),
                    json.dumps(person.alternate_names),
                ),
            )
            for i, parent_id in enumerate(person.parent_ids):
                role = (ParentRole.FATHER, ParentRole.MOTHER)[i]
                conn.execute(
                    "INSERT OR IGNORE INTO parent_edge (parent_id, child_id, role) VALUES (?, ?, ?)",
                    (parent_id, person.id, role.value),
                )
            conn.commit()

    def get_person(self, person_id: str) -> CanonicalPerson | None:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM person WHERE person_id = ?", (person_id,)).fetchone()
            if row is None:
                return None
            parents = conn.execute(
                f"SELECT parent_id FROM parent_edge WHERE child_id = ? ORDER BY {_ROLE_ORDER}, rowid",
                (person_id,),
            ).fetchall()
            children = conn.execute(
                "SELECT child_id FROM parent_edge WHERE parent_id = ? ORDER BY rowid",
                (person_id,),
            ).fetchall()
        return _row_to_person(
            row,
            parent_ids=[r["parent_id"] for r in parents][:2],
            child_ids=[r["child_id"] for r in children],
        )

    def has_person(self, person_id: str) -> bool:
        with self._get_conn() as conn:
            row = conn.execute("SELECT 1 FROM person WHERE person_id = ?", (person_id,)).fetchone()
        return row is not None

    def count_persons(self) -> int:
        with self._get_conn() as conn:
            return conn.execute("SELECT COUNT(*) FROM person").fetchone()[0]

    # --------------------------- Edges ---------------------------

    def add_parent_edge(self, child_id: str, parent_id: str, role: ParentRole | str = ParentRole.PARENT) -> None:
        role = ParentRole(role)
        with self._get_conn() as conn:
            conn.execute(
                """
                INSERT INTO parent_edge (parent_id, child_id, role) VALUES (?, ?, ?)
                ON CONFLICT(parent_id, child_id) DO UPDATE SET role = excluded.role
                """,
                (parent_id, child_id, role.value),
            )
            conn.commit()

    def get_parent_edges(self, person_id: str) -> list[ParentEdge]:
        with self._get_conn() as conn:
            rows = conn.execute(
                f"SELECT parent_id, child_id, role FROM parent_edge WHERE child_id = ? ORDER BY {_ROLE_ORDER}, rowid",
                (person_id,),
            ).fetchall()
        return [ParentEdge(parent_id=r["parent_id"], child_id=r["child_id"], role=ParentRole(r["role"])) for r in rows]

    def get_children(self, person_id: str) -> list[str]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT child_id FROM parent_edge WHERE parent_id = ? ORDER BY rowid", (person_id,)
            ).fetchall()
        return [r["child_id"] for r in rows]

    # --------------------------- Overrides ---------------------------

    def get_overrides(self, person_id: str) -> dict[str, LocalOverride]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT field, value_json, updated_at FROM local_override WHERE person_id = ?",
                (person_id,),
            ).fetchall()
        return {
            r["field"]: LocalOverride(
                person_id=person_id,
                field=r["field"],
                value=json.loads(r["value_json"]),
                updated_at=datetime.fromisoformat(r["updated_at"]),
            )
            for r in rows
        }

    def set_override(self, person_id: str, field: str, value: Any) -> LocalOverride:
        """Record a user edit.

        Raises:
            ValueError: for an unknown field, or a scalar/list mismatch.
        """
        if field not in OVERRIDE_FIELDS:
            raise ValueError(f"unknown override field: {field}")
        if field in LIST_OVERRIDE_FIELDS:
            if not isinstance(value, list):
                raise ValueError(f"{field} override must be a list")
        elif value is not None and not isinstance(value, str):
            raise ValueError(f"{field} override must be a string")
        override = LocalOverride(person_id=person_id, field=field, value=value)
        with self._get_conn() as conn:
            conn.execute(
                """
                INSERT INTO local_override (person_id, field, value_json, updated_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(person_id, field) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_at = excluded.updated_at
                """,
                (person_id, field, json.dumps(value), override.updated_at.isoformat()),
            )
            conn.commit()
        logger.info("local_override.set", person_id=person_id, field=field)
        return override

    def delete_override(self, person_id: str, field: str) -> bool:
        with self._get_conn() as conn:
            deleted = conn.execute(
                "DELETE FROM local_override WHERE person_id = ? AND field = ?", (person_id, field)
            ).rowcount
            conn.commit()
        return bool(deleted)

    def get_effective_person(self, person_id: str) -> CanonicalPerson | None:
        """The base record with user overrides applied."""
        person = self.get_person(person_id)
        if person is None:
            return None
        return apply_overrides(person, self.get_overrides(person_id))


def apply_overrides(person: CanonicalPerson, overrides: dict[str, LocalOverride]) -> CanonicalPerson:
    """Return a copy of ``person`` with overrides layered on top."""
    if not overrides:
        return person
    updated = person.model_copy(deep=True)

    def value(field: str) -> Any:
        return overrides[field].value

    if "name" in overrides:
        updated.display_name = value("name") or ""
    if "gender" in overrides:
        updated.gender = value("gender")
    for prefix in ("birth", "death"):
        date_key, place_key = f"{prefix}_date", f"{prefix}_place"
        if date_key in overrides or place_key in overrides:
            event = getattr(updated, prefix) or VitalEvent()
            if date_key in overrides:
                event.date = value(date_key)
            if place_key in overrides:
                event.place = value(place_key)
            setattr(updated, prefix, event)
    if "alternate_names" in overrides:
        updated.alternate_names = list(value("alternate_names") or [])
    if "occupations" in overrides:
        updated.occupations = list(value("occupations") or [])
    return updated


def _row_to_person(row: sqlite3.Row, parent_ids: list[str], child_ids: list[str]) -> CanonicalPerson:
    birth = VitalEvent(date=row["birth_date"], place=row["birth_place"])
    death = VitalEvent(date=row["death_date"], place=row["death_place"])
    return CanonicalPerson(
        id=row["person_id"],
        display_name=row["display_name"],
        living=bool(row["living"]),
        gender=row["gender"],
        birth=birth if (birth.date or birth.place) else None,
        death=death if (death.date or death.place) else None,
        parent_ids=parent_ids,
        child_ids=child_ids,
        occupations=json.loads(row["occupations_json"]),
        alternate_names=json.loads(row["alternate_names_json"]),
    )


class StoreRegistry:
    """Opens one SQLiteLocalStore per database ID under a data directory."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir)
        self._stores: dict[str, SQLiteLocalStore] = {}

    def path_for(self, db_id: str) -> Path:
        return self.data_dir / f"{db_id}.db"

    def exists(self, db_id: str) -> bool:
        return db_id in self._stores or self.path_for(db_id).exists()

    def get(self, db_id: str) -> SQLiteLocalStore:
        if db_id not in self._stores:
            self._stores[db_id] = SQLiteLocalStore(self.path_for(db_id))
        return self._stores[db_id]
