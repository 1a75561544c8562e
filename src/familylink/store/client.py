"""
SQLite storage for families, persons, relationship edges and memories.

The store is a thin persistence adapter: it reads and writes records and
offers a write transaction. Structural rules are enforced by
RelationshipValidator before anything reaches it.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Generator

from familylink.core.graph import FamilyGraph, attach_links, build_graph
from familylink.core.models import (
    Family,
    Memory,
    ParentChildEdge,
    Person,
    PersonRecord,
    SpouseEdge,
    canonical_pair,
)

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS family (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    slug TEXT NOT NULL UNIQUE,
    description TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS person (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL REFERENCES family(id) ON DELETE CASCADE,
    given_name TEXT NOT NULL,
    middle_name TEXT,
    family_name TEXT,
    gender TEXT,
    birth_date TEXT,
    death_date TEXT,
    avatar_url TEXT,
    notes TEXT,
    privacy TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS person_family ON person(family_id);

CREATE TABLE IF NOT EXISTS relationship (
    id TEXT PRIMARY KEY,
    parent_id TEXT NOT NULL REFERENCES person(id) ON DELETE CASCADE,
    child_id TEXT NOT NULL REFERENCES person(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    UNIQUE (parent_id, child_id)
);

CREATE TABLE IF NOT EXISTS spouse (
    id TEXT PRIMARY KEY,
    a_id TEXT NOT NULL REFERENCES person(id) ON DELETE CASCADE,
    b_id TEXT NOT NULL REFERENCES person(id) ON DELETE CASCADE,
    pair_lo TEXT NOT NULL,
    pair_hi TEXT NOT NULL,
    start_date TEXT,
    end_date TEXT,
    created_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS spouse_active_pair
    ON spouse(pair_lo, pair_hi) WHERE end_date IS NULL;

CREATE TABLE IF NOT EXISTS memory (
    id TEXT PRIMARY KEY,
    family_id TEXT NOT NULL REFERENCES family(id) ON DELETE CASCADE,
    author TEXT,
    title TEXT NOT NULL,
    body TEXT NOT NULL,
    image_url TEXT,
    tagged_person_ids TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS memory_family ON memory(family_id, created_at);
"""

PERSON_COLUMNS = (
    "id", "family_id", "given_name", "middle_name", "family_name", "gender",
    "birth_date", "death_date", "avatar_url", "notes", "privacy",
    "created_at", "updated_at",
)

MEMORY_COLUMNS = (
    "id", "family_id", "author", "title", "body", "image_url",
    "tagged_person_ids", "created_at", "updated_at",
)


class FamilyStore:
    """
    Client for the family tree database.

    One connection is shared between threads and guarded by a reentrant lock.
    Writes go through transaction(), which opens an IMMEDIATE transaction so
    that a read-validate-write sequence inside it sees no interleaved writer.
    """

    def __init__(self, db_path: str | Path | None = None):
        """
        Initialize the store.

        Args:
            db_path: Path to the SQLite file, or ":memory:"
        """
        self.db_path = str(db_path) if db_path else None
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    def connect(self, db_path: str | Path | None = None) -> None:
        """
        Open the database and create the schema if needed.

        Args:
            db_path: Path to database (overrides constructor path)
        """
        path = str(db_path) if db_path else self.db_path
        if not path:
            raise ValueError("No database path provided")

        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(SCHEMA)
        self.db_path = path
        logger.debug("Connected to %s", path)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> FamilyStore:
        if not self._conn:
            self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if not self._conn:
            raise RuntimeError("Not connected to database")
        return self._conn

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for a write transaction.

        Nested use joins the outer transaction; only the outermost level
        commits or rolls back.
        """
        conn = self.conn
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield conn
                finally:
                    self._depth -= 1
                return

            conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            finally:
                self._depth = 0

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def _query_one(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        rows = self._query(sql, params)
        return rows[0] if rows else None

    # =========================================
    # Family Operations
    # =========================================

    def add_family(self, family: Family) -> Family:
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO family (id, name, slug, description, created_at) VALUES (?, ?, ?, ?, ?)",
                (family.id, family.name, family.slug, family.description, family.created_at.isoformat()),
            )
        return family

    def get_family(self, family_id: str) -> Family | None:
        row = self._query_one("SELECT * FROM family WHERE id = ?", (family_id,))
        return Family.model_validate(dict(row)) if row else None

    def get_family_by_slug(self, slug: str) -> Family | None:
        row = self._query_one("SELECT * FROM family WHERE slug = ?", (slug,))
        return Family.model_validate(dict(row)) if row else None

    def update_family(self, family: Family) -> Family:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE family SET name = ?, slug = ?, description = ? WHERE id = ?",
                (family.name, family.slug, family.description, family.id),
            )
        return family

    def list_families(self) -> list[Family]:
        rows = self._query("SELECT * FROM family ORDER BY created_at, rowid")
        return [Family.model_validate(dict(r)) for r in rows]

    # =========================================
    # Person Operations
    # =========================================

    def _person_row(self, person: Person) -> tuple:
        data = person.model_dump(mode="json", by_alias=False)
        data["privacy"] = json.dumps(data["privacy"], sort_keys=True)
        return tuple(data[c] for c in PERSON_COLUMNS)

    def _person_from_row(self, row: sqlite3.Row) -> Person:
        data: dict[str, Any] = dict(row)
        data["privacy"] = json.loads(data["privacy"] or "{}")
        return Person.model_validate(data)

    def add_person(self, person: Person) -> Person:
        placeholders = ", ".join("?" for _ in PERSON_COLUMNS)
        with self.transaction() as conn:
            conn.execute(
                f"INSERT INTO person ({', '.join(PERSON_COLUMNS)}) VALUES ({placeholders})",
                self._person_row(person),
            )
        return person

    def update_person(self, person: Person) -> Person:
        assignments = ", ".join(f"{c} = ?" for c in PERSON_COLUMNS[1:])
        values = self._person_row(person)
        with self.transaction() as conn:
            conn.execute(
                f"UPDATE person SET {assignments} WHERE id = ?",
                values[1:] + (person.id,),
            )
        return person

    def delete_person(self, person_id: str) -> bool:
        """Delete a person, every edge touching it, and its memory tags."""
        with self.transaction() as conn:
            row = conn.execute("SELECT family_id FROM person WHERE id = ?", (person_id,)).fetchone()
            if row is not None:
                self._untag_memories(conn, row["family_id"], person_id)
            conn.execute(
                "DELETE FROM relationship WHERE parent_id = ? OR child_id = ?",
                (person_id, person_id),
            )
            conn.execute(
                "DELETE FROM spouse WHERE a_id = ? OR b_id = ?",
                (person_id, person_id),
            )
            cursor = conn.execute("DELETE FROM person WHERE id = ?", (person_id,))
        return cursor.rowcount > 0

    def get_person(self, person_id: str) -> Person | None:
        row = self._query_one("SELECT * FROM person WHERE id = ?", (person_id,))
        return self._person_from_row(row) if row else None

    def get_persons(self, person_ids: list[str]) -> list[Person]:
        if not person_ids:
            return []
        placeholders = ", ".join("?" for _ in person_ids)
        rows = self._query(
            f"SELECT * FROM person WHERE id IN ({placeholders}) ORDER BY created_at, rowid",
            tuple(person_ids),
        )
        return [self._person_from_row(r) for r in rows]

    def list_persons(self, family_id: str) -> list[Person]:
        rows = self._query(
            "SELECT * FROM person WHERE family_id = ? ORDER BY created_at, rowid",
            (family_id,),
        )
        return [self._person_from_row(r) for r in rows]

    def search_persons(self, family_id: str, query: str, limit: int = 10) -> list[Person]:
        """Case-insensitive substring match on any name part."""
        pattern = f"%{query.lower()}%"
        rows = self._query(
            """
            SELECT * FROM person
            WHERE family_id = ?
              AND (lower(given_name) LIKE ?
                   OR lower(coalesce(middle_name, '')) LIKE ?
                   OR lower(coalesce(family_name, '')) LIKE ?)
            ORDER BY created_at, rowid
            LIMIT ?
            """,
            (family_id, pattern, pattern, pattern, limit),
        )
        return [self._person_from_row(r) for r in rows]

    # =========================================
    # Relationship Operations
    # =========================================

    def _parent_child_from_row(self, row: sqlite3.Row) -> ParentChildEdge:
        return ParentChildEdge.model_validate(dict(row))

    def _spouse_from_row(self, row: sqlite3.Row) -> SpouseEdge:
        data = dict(row)
        data.pop("pair_lo", None)
        data.pop("pair_hi", None)
        return SpouseEdge.model_validate(data)

    def add_parent_child(self, edge: ParentChildEdge) -> ParentChildEdge:
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO relationship (id, parent_id, child_id, created_at) VALUES (?, ?, ?, ?)",
                (edge.id, edge.parent_id, edge.child_id, edge.created_at.isoformat()),
            )
        return edge

    def get_parent_child(self, edge_id: str) -> ParentChildEdge | None:
        row = self._query_one("SELECT * FROM relationship WHERE id = ?", (edge_id,))
        return self._parent_child_from_row(row) if row else None

    def find_parent_child(self, parent_id: str, child_id: str) -> ParentChildEdge | None:
        row = self._query_one(
            "SELECT * FROM relationship WHERE parent_id = ? AND child_id = ?",
            (parent_id, child_id),
        )
        return self._parent_child_from_row(row) if row else None

    def delete_parent_child(self, edge_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM relationship WHERE id = ?", (edge_id,))
        return cursor.rowcount > 0

    def list_parent_child(self, family_id: str) -> list[ParentChildEdge]:
        """Edges whose child belongs to the family."""
        rows = self._query(
            """
            SELECT r.* FROM relationship r
            JOIN person c ON c.id = r.child_id
            WHERE c.family_id = ?
            ORDER BY r.created_at, r.rowid
            """,
            (family_id,),
        )
        return [self._parent_child_from_row(r) for r in rows]

    def add_spouse(self, edge: SpouseEdge) -> SpouseEdge:
        lo, hi = canonical_pair(edge.a_id, edge.b_id)
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO spouse (id, a_id, b_id, pair_lo, pair_hi, start_date, end_date, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    edge.id, edge.a_id, edge.b_id, lo, hi,
                    _iso(edge.start_date), _iso(edge.end_date),
                    edge.created_at.isoformat(),
                ),
            )
        return edge

    def get_spouse(self, edge_id: str) -> SpouseEdge | None:
        row = self._query_one("SELECT * FROM spouse WHERE id = ?", (edge_id,))
        return self._spouse_from_row(row) if row else None

    def end_spouse(self, edge_id: str, end_date: date) -> SpouseEdge | None:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE spouse SET end_date = ? WHERE id = ?",
                (end_date.isoformat(), edge_id),
            )
        return self.get_spouse(edge_id)

    def delete_spouse(self, edge_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM spouse WHERE id = ?", (edge_id,))
        return cursor.rowcount > 0

    def list_spouses(self, family_id: str) -> list[SpouseEdge]:
        """Spouse links whose first member belongs to the family."""
        rows = self._query(
            """
            SELECT s.* FROM spouse s
            JOIN person a ON a.id = s.a_id
            WHERE a.family_id = ?
            ORDER BY s.created_at, s.rowid
            """,
            (family_id,),
        )
        return [self._spouse_from_row(r) for r in rows]

    # =========================================
    # Memory Operations
    # =========================================

    def _memory_row(self, memory: Memory) -> tuple:
        data = memory.model_dump(mode="json", by_alias=False)
        data["tagged_person_ids"] = json.dumps(data["tagged_person_ids"])
        return tuple(data[c] for c in MEMORY_COLUMNS)

    def _memory_from_row(self, row: sqlite3.Row) -> Memory:
        data: dict[str, Any] = dict(row)
        data["tagged_person_ids"] = json.loads(data["tagged_person_ids"] or "[]")
        return Memory.model_validate(data)

    def _untag_memories(self, conn: sqlite3.Connection, family_id: str, person_id: str) -> int:
        """Remove person_id from every memory tag list in the family."""
        rows = conn.execute(
            "SELECT id, tagged_person_ids FROM memory WHERE family_id = ?",
            (family_id,),
        ).fetchall()
        updated = 0
        for row in rows:
            tags = json.loads(row["tagged_person_ids"] or "[]")
            if person_id not in tags:
                continue
            tags = [t for t in tags if t != person_id]
            conn.execute(
                "UPDATE memory SET tagged_person_ids = ? WHERE id = ?",
                (json.dumps(tags), row["id"]),
            )
            updated += 1
        if updated:
            logger.debug("Untagged %s from %d memories", person_id, updated)
        return updated

    def add_memory(self, memory: Memory) -> Memory:
        placeholders = ", ".join("?" for _ in MEMORY_COLUMNS)
        with self.transaction() as conn:
            conn.execute(
                f"INSERT INTO memory ({', '.join(MEMORY_COLUMNS)}) VALUES ({placeholders})",
                self._memory_row(memory),
            )
        return memory

    def update_memory(self, memory: Memory) -> Memory:
        assignments = ", ".join(f"{c} = ?" for c in MEMORY_COLUMNS[1:])
        values = self._memory_row(memory)
        with self.transaction() as conn:
            conn.execute(
                f"UPDATE memory SET {assignments} WHERE id = ?",
                values[1:] + (memory.id,),
            )
        return memory

    def delete_memory(self, memory_id: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM memory WHERE id = ?", (memory_id,))
        return cursor.rowcount > 0

    def get_memory(self, memory_id: str) -> Memory | None:
        row = self._query_one("SELECT * FROM memory WHERE id = ?", (memory_id,))
        return self._memory_from_row(row) if row else None

    def list_memories(self, family_id: str, person_id: str | None = None) -> list[Memory]:
        """Memories of a family, newest first, optionally only those tagging person_id."""
        rows = self._query(
            "SELECT * FROM memory WHERE family_id = ? ORDER BY created_at DESC, rowid DESC",
            (family_id,),
        )
        memories = [self._memory_from_row(r) for r in rows]
        if person_id is not None:
            memories = [m for m in memories if m.tags(person_id)]
        return memories

    # =========================================
    # Graph Snapshot
    # =========================================

    def load_records(self, family_id: str) -> list[PersonRecord]:
        """All persons of a family with their incident edges attached."""
        with self._lock:
            return attach_links(
                self.list_persons(family_id),
                self.list_parent_child(family_id),
                self.list_spouses(family_id),
            )

    def load_graph(self, family_id: str) -> FamilyGraph:
        return build_graph(self.load_records(family_id))


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None
