"""SQLite storage backend with declarative cascades."""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from chowder.core.errors import (
    IntegrityError,
    StorageError,
    StorageUnavailable,
    StructureExists,
)
from chowder.storage.schema import (
    COLLECTIONS,
    CollectionSchema,
    FieldDef,
    FieldType,
    IndexDef,
    base_fields,
    get_schema,
)

from .base import Key, StorageBackend

logger = logging.getLogger(__name__)


def _q(identifier: str) -> str:
    """Quote an identifier ('order' is a reserved word)."""
    return '"' + identifier.replace('"', '""') + '"'


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


def _column_ddl(field: FieldDef) -> str:
    sql_type = "INTEGER" if field.type == FieldType.BOOLEAN else field.type.value
    parts = [_q(field.name), sql_type]
    if not field.nullable:
        parts.append("NOT NULL")
    if field.default is not None:
        parts.append(f"DEFAULT {_literal(field.default)}")
    if field.check:
        parts.append(f"CHECK({field.check})")
    return " ".join(parts)


def _param(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    return value


class SQLiteBackend(StorageBackend):
    """SQLite-based storage; one table per collection.

    Cascades are expressed as ``FOREIGN KEY ... ON DELETE CASCADE`` rules, so
    deleting a parent row is a single statement and therefore atomic.
    """

    name = "sqlite"

    def __init__(self, db_path: Path | str):
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._lock = threading.RLock()
        self._transaction_active = threading.local()
        self.conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the connection, ensuring it exists."""
        if self.conn is None:
            raise StorageUnavailable("Database connection not initialized")
        return self.conn

    def initialize(self) -> None:
        """Open the database and enable foreign key enforcement."""
        if self.conn is not None:
            return
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys = ON")
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable(f"Cannot open database {self.db_path}: {e}") from e
        self.conn = conn
        logger.debug(f"Opened SQLite database at {self.db_path}")

    def create_structures(self) -> None:
        """Create tables and base indexes that do not exist yet."""
        statements = []
        for schema in COLLECTIONS.values():
            columns = [_column_ddl(f) for f in base_fields(schema.name)]
            columns.append(f"PRIMARY KEY ({', '.join(_q(k) for k in schema.key)})")
            for ref in schema.parents:
                columns.append(
                    f"FOREIGN KEY({_q(ref.field)}) REFERENCES "
                    f"{_q(ref.collection)}(id) ON DELETE CASCADE"
                )
            statements.append(
                f"CREATE TABLE IF NOT EXISTS {_q(schema.name)} (\n    "
                + ",\n    ".join(columns)
                + "\n);"
            )
            for index in schema.indexes:
                statements.append(self._index_ddl(schema.name, index, if_not_exists=True))

        with self._lock:
            self.connection.executescript("\n".join(statements))
            self.connection.commit()

    def add_field(self, collection: str, field: str) -> None:
        """Add a column with ALTER TABLE."""
        definition = get_schema(collection).field(field)
        with self._lock:
            try:
                self.connection.execute(
                    f"ALTER TABLE {_q(collection)} ADD COLUMN {_column_ddl(definition)}"
                )
                self.connection.commit()
            except sqlite3.OperationalError as e:
                if "duplicate column name" in str(e):
                    raise StructureExists(collection, field) from e
                raise

    def add_index(self, collection: str, index: IndexDef) -> None:
        """Create a secondary index."""
        with self._lock:
            try:
                self.connection.execute(
                    self._index_ddl(collection, index, if_not_exists=False)
                )
                self.connection.commit()
            except sqlite3.OperationalError as e:
                if "already exists" in str(e):
                    raise StructureExists(collection, index.name_for(collection)) from e
                raise

    def get(self, collection: str, key: Key) -> dict[str, Any] | None:
        """Read a row by primary key."""
        schema = get_schema(collection)
        where, params = self._key_clause(schema, key)
        with self._lock:
            row = self.connection.execute(
                f"SELECT * FROM {_q(collection)} WHERE {where}", params
            ).fetchone()
        return self._from_row(schema, row) if row else None

    def all(self, collection: str) -> list[dict[str, Any]]:
        """Read all rows in insertion order."""
        schema = get_schema(collection)
        with self._lock:
            cursor = self.connection.execute(
                f"SELECT * FROM {_q(collection)} ORDER BY rowid"
            )
            return [self._from_row(schema, row) for row in cursor]

    def find(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        """Read rows matching a single field, in insertion order."""
        schema = get_schema(collection)
        schema.field(field)
        if value is None:
            condition, params = f"{_q(field)} IS NULL", ()
        else:
            condition, params = f"{_q(field)} = ?", (_param(value),)
        with self._lock:
            cursor = self.connection.execute(
                f"SELECT * FROM {_q(collection)} WHERE {condition} ORDER BY rowid",
                params,
            )
            return [self._from_row(schema, row) for row in cursor]

    def insert(self, collection: str, record: dict[str, Any]) -> None:
        """Insert a new row."""
        schema = get_schema(collection)
        data = schema.normalize(record)
        columns = ", ".join(_q(k) for k in data)
        placeholders = ", ".join("?" for _ in data)
        self._execute_write(
            f"INSERT INTO {_q(collection)} ({columns}) VALUES ({placeholders})",
            [_param(v) for v in data.values()],
        )

    def put(self, collection: str, record: dict[str, Any]) -> None:
        """Insert or update a row, keeping its rowid (and so its position)."""
        schema = get_schema(collection)
        data = schema.normalize(record)
        columns = ", ".join(_q(k) for k in data)
        placeholders = ", ".join("?" for _ in data)
        conflict = ", ".join(_q(k) for k in schema.key)
        assignments = ", ".join(
            f"{_q(k)} = excluded.{_q(k)}" for k in data if k not in schema.key
        )
        action = f"DO UPDATE SET {assignments}" if assignments else "DO NOTHING"
        self._execute_write(
            f"INSERT INTO {_q(collection)} ({columns}) VALUES ({placeholders}) "
            f"ON CONFLICT({conflict}) {action}",
            [_param(v) for v in data.values()],
        )

    def update(self, collection: str, key: Key, changes: dict[str, Any]) -> bool:
        """Update selected columns of a row."""
        schema = get_schema(collection)
        if not changes:
            return self.get(collection, key) is not None
        unknown = set(changes) - set(schema.field_names)
        if unknown:
            raise IntegrityError(
                f"Unknown fields for {collection}: {', '.join(sorted(unknown))}"
            )
        assignments = ", ".join(f"{_q(k)} = ?" for k in changes)
        where, key_params = self._key_clause(schema, key)
        cursor = self._execute_write(
            f"UPDATE {_q(collection)} SET {assignments} WHERE {where}",
            [_param(v) for v in changes.values()] + key_params,
        )
        return cursor.rowcount > 0

    def delete(self, collection: str, key: Key) -> bool:
        """Delete a row; foreign keys cascade to owned rows."""
        schema = get_schema(collection)
        where, params = self._key_clause(schema, key)
        cursor = self._execute_write(
            f"DELETE FROM {_q(collection)} WHERE {where}", params
        )
        return cursor.rowcount > 0

    def count(self, collection: str) -> int:
        """Count rows in a table."""
        get_schema(collection)
        with self._lock:
            row = self.connection.execute(
                f"SELECT COUNT(*) AS count FROM {_q(collection)}"
            ).fetchone()
            return row["count"]

    def clear(self, collection: str) -> None:
        """Delete every row of a table."""
        get_schema(collection)
        self._execute_write(f"DELETE FROM {_q(collection)}", [])

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def supports_transactions(self) -> bool:
        """SQLite supports transactions."""
        return True

    @contextmanager
    def begin_transaction(self) -> Iterator[None]:
        """Transaction context manager."""
        with self._lock:
            outer = getattr(self._transaction_active, "active", False)
            in_transaction = self.connection.in_transaction
            self._transaction_active.active = True

            if not in_transaction:
                self.connection.execute("BEGIN")

            try:
                yield
                if not in_transaction:
                    self.connection.commit()
            except Exception:
                if not in_transaction:
                    self.connection.rollback()
                raise
            finally:
                self._transaction_active.active = outer

    def table_columns(self, collection: str) -> list[str]:
        """Column names of a table as stored on disk."""
        with self._lock:
            cursor = self.connection.execute(f"PRAGMA table_info({_q(collection)})")
            return [row["name"] for row in cursor]

    def _execute_write(self, sql: str, params: list[Any]) -> sqlite3.Cursor:
        with self._lock:
            try:
                cursor = self.connection.execute(sql, params)
            except sqlite3.IntegrityError as e:
                if not getattr(self._transaction_active, "active", False):
                    self.connection.rollback()
                raise IntegrityError(str(e)) from e
            except sqlite3.Error as e:
                if not getattr(self._transaction_active, "active", False):
                    self.connection.rollback()
                raise StorageError(f"Write failed: {e}") from e
            if not getattr(self._transaction_active, "active", False):
                try:
                    self.connection.commit()
                except sqlite3.Error as e:
                    raise StorageError(f"Commit failed: {e}") from e
            return cursor

    def _index_ddl(self, collection: str, index: IndexDef, if_not_exists: bool) -> str:
        unique = "UNIQUE " if index.unique else ""
        guard = "IF NOT EXISTS " if if_not_exists else ""
        collate = " COLLATE NOCASE" if index.nocase else ""
        return (
            f"CREATE {unique}INDEX {guard}{_q(index.name_for(collection))} "
            f"ON {_q(collection)}({_q(index.field)}{collate});"
        )

    def _key_clause(self, schema: CollectionSchema, key: Key) -> tuple[str, list[Any]]:
        values = key if isinstance(key, tuple) else (key,)
        if len(values) != len(schema.key):
            raise IntegrityError(f"Bad key for {schema.name}: {key!r}")
        where = " AND ".join(f"{_q(k)} = ?" for k in schema.key)
        return where, list(values)

    def _from_row(self, schema: CollectionSchema, row: sqlite3.Row) -> dict[str, Any]:
        columns = row.keys()
        record = {}
        for field in schema.fields:
            value = row[field.name] if field.name in columns else field.default
            if field.type == FieldType.BOOLEAN and value is not None:
                value = bool(value)
            record[field.name] = value
        return record
