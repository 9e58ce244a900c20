"""
SQLite-backed durable store.

Entities and relationships live in two tables; properties are stored as JSON
text. The identifying property of an entity is copied into an indexed
(type, key_name, key_value) column triple so lookups by subject are a single
index probe.

The store never commits on its own. Callers own the transaction: wrap writes
in `with store.transaction():` or call `commit()` when done.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from hnswdb.persistence.store import Entity, Relationship, encode_key

logger = logging.getLogger(__name__)


class SQLiteStore:
    """DurableStore on a single SQLite database file."""

    def __init__(self, db_path: str = "hnswdb.sqlite3") -> None:
        """
        Open (and create if needed) the database.

        Args:
            db_path: Database file path, or ":memory:" for a private in-memory DB
        """
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
        self._init_tables()
        logger.debug("Opened SQLite store at %s", db_path)

    def _init_tables(self) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS entities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    type TEXT NOT NULL,
                    key_name TEXT,
                    key_value TEXT,
                    properties TEXT NOT NULL
                )
            """)
            cursor.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_entities_key "
                "ON entities (type, key_name, key_value)"
            )
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS relationships (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    type TEXT NOT NULL,
                    source INTEGER NOT NULL REFERENCES entities (id),
                    target INTEGER NOT NULL REFERENCES entities (id),
                    weight REAL NOT NULL,
                    properties TEXT NOT NULL
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_relationships_source "
                "ON relationships (source, type)"
            )
            self._conn.commit()

    # --- Transactions ---

    @contextmanager
    def transaction(self) -> Iterator["SQLiteStore"]:
        """Commit on success, roll back if the block raises."""
        with self._lock:
            try:
                yield self
            except BaseException:
                self._conn.rollback()
                raise
            else:
                self._conn.commit()

    def commit(self) -> None:
        with self._lock:
            self._conn.commit()

    def rollback(self) -> None:
        with self._lock:
            self._conn.rollback()

    def close(self) -> None:
        """Close the database connection (uncommitted writes are lost)."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "SQLiteStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # --- Entities ---

    def create_entity(
        self, type_name: str, properties: Dict[str, Any], key_property: Optional[str] = None
    ) -> Entity:
        key_value = None
        if key_property is not None:
            if key_property not in properties:
                raise KeyError(f"Key property {key_property!r} missing from entity properties")
            key_value = encode_key(properties[key_property])

        with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO entities (type, key_name, key_value, properties) VALUES (?, ?, ?, ?)",
                (type_name, key_property, key_value, json.dumps(properties)),
            )
            entity_id = cursor.lastrowid
        return Entity(id=entity_id, type=type_name, properties=dict(properties))

    def update_entity(self, entity_id: int, properties: Dict[str, Any]) -> Entity:
        with self._lock:
            row = self._conn.execute(
                "SELECT type, key_name FROM entities WHERE id = ?", (entity_id,)
            ).fetchone()
            if row is None:
                raise KeyError(f"Entity {entity_id} does not exist")

            key_value = None
            if row["key_name"] is not None:
                key_value = encode_key(properties[row["key_name"]])

            self._conn.execute(
                "UPDATE entities SET key_value = ?, properties = ? WHERE id = ?",
                (key_value, json.dumps(properties), entity_id),
            )
        return Entity(id=entity_id, type=row["type"], properties=dict(properties))

    def get_entity(self, entity_id: int) -> Optional[Entity]:
        with self._lock:
            row = self._conn.execute(
                "SELECT id, type, properties FROM entities WHERE id = ?", (entity_id,)
            ).fetchone()
        return self._row_to_entity(row) if row is not None else None

    def lookup_entity(self, type_name: str, property_name: str, value: Any) -> Optional[Entity]:
        with self._lock:
            row = self._conn.execute(
                "SELECT id, type, properties FROM entities "
                "WHERE type = ? AND key_name = ? AND key_value = ?",
                (type_name, property_name, encode_key(value)),
            ).fetchone()
            if row is not None:
                return self._row_to_entity(row)

            # Not an indexed key property: fall back to a scan
            rows = self._conn.execute(
                "SELECT id, type, properties FROM entities WHERE type = ? ORDER BY id",
                (type_name,),
            ).fetchall()

        for row in rows:
            entity = self._row_to_entity(row)
            if entity.properties.get(property_name) == value:
                return entity
        return None

    def iter_entities(self, type_name: str) -> Iterator[Entity]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, type, properties FROM entities WHERE type = ? ORDER BY id",
                (type_name,),
            ).fetchall()
        for row in rows:
            yield self._row_to_entity(row)

    def count_entities(self, type_name: str) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS count FROM entities WHERE type = ?", (type_name,)
            ).fetchone()
        return row["count"]

    # --- Relationships ---

    def create_relationship(
        self,
        type_name: str,
        source_id: int,
        target_id: int,
        weight: float,
        properties: Optional[Dict[str, Any]] = None,
    ) -> Relationship:
        properties = dict(properties or {})
        with self._lock:
            cursor = self._conn.execute(
                "INSERT INTO relationships (type, source, target, weight, properties) "
                "VALUES (?, ?, ?, ?, ?)",
                (type_name, source_id, target_id, float(weight), json.dumps(properties)),
            )
            relationship_id = cursor.lastrowid
        return Relationship(
            id=relationship_id,
            type=type_name,
            source=source_id,
            target=target_id,
            weight=float(weight),
            properties=properties,
        )

    def relationships_from(self, source_id: int, type_name: str) -> List[Relationship]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, type, source, target, weight, properties FROM relationships "
                "WHERE source = ? AND type = ? ORDER BY id",
                (source_id, type_name),
            ).fetchall()
        return [
            Relationship(
                id=row["id"],
                type=row["type"],
                source=row["source"],
                target=row["target"],
                weight=row["weight"],
                properties=json.loads(row["properties"]),
            )
            for row in rows
        ]

    def delete_relationships_from(self, source_id: int, type_name: str) -> int:
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM relationships WHERE source = ? AND type = ?", (source_id, type_name)
            )
        return cursor.rowcount

    def count_relationships(self, type_name: str) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS count FROM relationships WHERE type = ?", (type_name,)
            ).fetchone()
        return row["count"]

    @staticmethod
    def _row_to_entity(row: sqlite3.Row) -> Entity:
        return Entity(id=row["id"], type=row["type"], properties=json.loads(row["properties"]))

    def __repr__(self) -> str:
        return f"SQLiteStore(db_path={self.db_path!r})"
