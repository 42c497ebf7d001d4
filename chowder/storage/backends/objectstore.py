"""Object-store backend: keyed object stores with secondary indexes.

Models the browser-resident key-value store: each collection is an object
store keyed by its primary key, with secondary indexes maintained on write.
There are no declarative cascades here; deleting a parent fans out through
the parent-id indexes of every dependent store and deletes the children
explicitly, recursively.

State lives in memory and, when a path is given, is written to a single JSON
file atomically after every committed change.
"""

import json
import logging
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from copy import deepcopy
from pathlib import Path
from typing import Any

from chowder.core.errors import IntegrityError, StorageUnavailable, StructureExists
from chowder.storage.schema import (
    COLLECTIONS,
    CollectionSchema,
    IndexDef,
    base_fields,
    dependents,
    get_schema,
)

from .base import Key, StorageBackend

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _index_value(index: IndexDef, value: Any) -> Any:
    if index.nocase and isinstance(value, str):
        return value.lower()
    return value


class _Database:
    """Complete object-store state; copied wholesale for transactions."""

    def __init__(self):
        self.stores: dict[str, dict[Key, dict[str, Any]]] = {}
        self.sequence: dict[str, dict[Key, int]] = {}
        self.fields: dict[str, list[str]] = {}
        self.indexes: dict[str, dict[str, IndexDef]] = {}
        self.index_data: dict[str, dict[str, dict[Any, dict[Key, None]]]] = {}
        self.next_seq = 0

    def create_store(self, schema: CollectionSchema) -> None:
        self.stores[schema.name] = {}
        self.sequence[schema.name] = {}
        self.fields[schema.name] = [f.name for f in base_fields(schema.name)]
        self.indexes[schema.name] = {}
        self.index_data[schema.name] = {}
        for index in schema.indexes:
            self.create_index(schema.name, index)

    def create_index(self, collection: str, index: IndexDef) -> None:
        name = index.name_for(collection)
        self.indexes[collection][name] = index
        self.index_data[collection][name] = {}
        for key, record in self.stores[collection].items():
            self._check_unique(collection, name, index, key, record)
            self._index_add(collection, name, index, key, record)

    def index_for(self, collection: str, field: str) -> tuple[str, IndexDef] | None:
        for name, index in self.indexes[collection].items():
            if index.field == field:
                return name, index
        return None

    def add(self, collection: str, key: Key, record: dict[str, Any]) -> None:
        for name, index in self.indexes[collection].items():
            self._check_unique(collection, name, index, key, record)
        store = self.stores[collection]
        if key in store:
            self.remove_from_indexes(collection, key, store[key])
        else:
            self.sequence[collection][key] = self.next_seq
            self.next_seq += 1
        store[key] = record
        for name, index in self.indexes[collection].items():
            self._index_add(collection, name, index, key, record)

    def remove(self, collection: str, key: Key) -> None:
        record = self.stores[collection].pop(key)
        self.sequence[collection].pop(key, None)
        self.remove_from_indexes(collection, key, record)

    def remove_from_indexes(
        self, collection: str, key: Key, record: dict[str, Any]
    ) -> None:
        for name, index in self.indexes[collection].items():
            bucket = self.index_data[collection][name].get(
                _index_value(index, record.get(index.field))
            )
            if bucket is not None:
                bucket.pop(key, None)

    def check_parents(self, schema: CollectionSchema, record: dict[str, Any]) -> None:
        for ref in schema.parents:
            value = record.get(ref.field)
            if value is not None and value not in self.stores[ref.collection]:
                raise IntegrityError(
                    f"FOREIGN KEY constraint failed: {schema.name}.{ref.field}"
                )

    def keys_where(self, collection: str, field: str, value: Any) -> list[Key]:
        """Keys of records with ``field == value``, in insertion order."""
        store = self.stores[collection]
        found = self.index_for(collection, field)
        if found is None:
            keys = [k for k, r in store.items() if r.get(field) == value]
        else:
            name, index = found
            bucket = self.index_data[collection][name].get(_index_value(index, value), {})
            keys = [k for k in bucket if store[k].get(field) == value]
        order = self.sequence[collection]
        return sorted(keys, key=order.__getitem__)

    def _check_unique(
        self,
        collection: str,
        name: str,
        index: IndexDef,
        key: Key,
        record: dict[str, Any],
    ) -> None:
        if not index.unique:
            return
        value = _index_value(index, record.get(index.field))
        holders = self.index_data[collection][name].get(value, {})
        if any(holder != key for holder in holders):
            raise IntegrityError(
                f"UNIQUE constraint failed: {collection}.{index.field}"
            )

    def _index_add(
        self,
        collection: str,
        name: str,
        index: IndexDef,
        key: Key,
        record: dict[str, Any],
    ) -> None:
        value = _index_value(index, record.get(index.field))
        self.index_data[collection][name].setdefault(value, {})[key] = None


class ObjectStoreBackend(StorageBackend):
    """Object stores with secondary indexes and explicit fan-out cascades."""

    name = "objectstore"

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else None
        self._lock = threading.RLock()
        self._committed: _Database | None = None
        self._transaction_db: _Database | None = None
        self._in_transaction = False

    def initialize(self) -> None:
        """Load persisted state, or start empty."""
        if self._committed is not None:
            return
        db = _Database()
        if self.path is not None and self.path.exists():
            try:
                with open(self.path) as f:
                    payload = json.load(f)
                self._load(db, payload)
            except (OSError, ValueError, KeyError, TypeError) as e:
                raise StorageUnavailable(
                    f"Cannot open object store {self.path}: {e}"
                ) from e
        elif self.path is not None:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageUnavailable(
                    f"Cannot create object store directory: {e}"
                ) from e
        self._committed = db
        logger.debug(f"Opened object store at {self.path or '<memory>'}")

    def create_structures(self) -> None:
        """Create missing object stores with their base indexes."""
        with self._lock:
            db = self._db()
            for schema in COLLECTIONS.values():
                if schema.name not in db.stores:
                    db.create_store(schema)
            self._save()

    def add_field(self, collection: str, field: str) -> None:
        """Register a field and backfill its default into existing records."""
        definition = get_schema(collection).field(field)
        with self._lock:
            db = self._db()
            if field in db.fields[collection]:
                raise StructureExists(collection, field)
            db.fields[collection].append(field)
            for record in db.stores[collection].values():
                record.setdefault(field, definition.default)
            self._save()

    def add_index(self, collection: str, index: IndexDef) -> None:
        """Create a secondary index over existing records."""
        name = index.name_for(collection)
        with self._lock:
            db = self._db()
            if name in db.indexes[collection]:
                raise StructureExists(collection, name)
            db.create_index(collection, index)
            self._save()

    def get(self, collection: str, key: Key) -> dict[str, Any] | None:
        """Read a record by key."""
        schema = get_schema(collection)
        with self._lock:
            record = self._db().stores[collection].get(self._key(schema, key))
            return self._shape(schema, record) if record is not None else None

    def all(self, collection: str) -> list[dict[str, Any]]:
        """Read all records in insertion order."""
        schema = get_schema(collection)
        with self._lock:
            db = self._db()
            order = db.sequence[collection]
            store = db.stores[collection]
            return [
                self._shape(schema, store[k]) for k in sorted(store, key=order.__getitem__)
            ]

    def find(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        """Query by field, through a secondary index when one exists."""
        schema = get_schema(collection)
        schema.field(field)
        with self._lock:
            db = self._db()
            store = db.stores[collection]
            return [
                self._shape(schema, store[k])
                for k in db.keys_where(collection, field, value)
            ]

    def insert(self, collection: str, record: dict[str, Any]) -> None:
        """Add a record; fails if the key is taken."""
        schema = get_schema(collection)
        data = schema.normalize(record)
        key = schema.key_of(data)
        with self._lock:
            db = self._db()
            if key in db.stores[collection]:
                raise IntegrityError(
                    f"UNIQUE constraint failed: {collection} key {key!r}"
                )
            db.check_parents(schema, data)
            db.add(collection, key, data)
            self._save()

    def put(self, collection: str, record: dict[str, Any]) -> None:
        """Add or replace a record."""
        schema = get_schema(collection)
        data = schema.normalize(record)
        with self._lock:
            db = self._db()
            db.check_parents(schema, data)
            db.add(collection, schema.key_of(data), data)
            self._save()

    def update(self, collection: str, key: Key, changes: dict[str, Any]) -> bool:
        """Merge changes into a stored record."""
        schema = get_schema(collection)
        unknown = set(changes) - set(schema.field_names)
        if unknown:
            raise IntegrityError(
                f"Unknown fields for {collection}: {', '.join(sorted(unknown))}"
            )
        key = self._key(schema, key)
        with self._lock:
            db = self._db()
            current = db.stores[collection].get(key)
            if current is None:
                return False
            if changes:
                merged = {**current, **changes}
                db.check_parents(schema, merged)
                db.add(collection, key, merged)
                self._save()
            return True

    def delete(self, collection: str, key: Key) -> bool:
        """Delete a record, fanning out to every record it owns."""
        schema = get_schema(collection)
        key = self._key(schema, key)
        with self._lock:
            db = self._db()
            if key not in db.stores[collection]:
                return False
            self._delete_cascade(db, collection, key)
            self._save()
            return True

    def count(self, collection: str) -> int:
        """Count records in a store."""
        get_schema(collection)
        with self._lock:
            return len(self._db().stores[collection])

    def clear(self, collection: str) -> None:
        """Delete every record of a store, cascading like delete()."""
        get_schema(collection)
        with self._lock:
            db = self._db()
            for key in list(db.stores[collection]):
                if key in db.stores[collection]:
                    self._delete_cascade(db, collection, key)
            self._save()

    def close(self) -> None:
        """Flush and drop in-memory state."""
        with self._lock:
            if self._committed is not None:
                self._save()
            self._committed = None

    def supports_transactions(self) -> bool:
        """Object store supports transactions."""
        return True

    @contextmanager
    def begin_transaction(self) -> Iterator[None]:
        """Run a block against a copy of the state; commit or discard it."""
        with self._lock:
            if self._in_transaction:
                yield
                return

            self._in_transaction = True
            self._transaction_db = deepcopy(self._db())

            try:
                yield
                self._committed = self._transaction_db
            finally:
                self._transaction_db = None
                self._in_transaction = False
            self._save()

    def index_names(self, collection: str) -> list[str]:
        """Names of the secondary indexes of a store."""
        with self._lock:
            return list(self._db().indexes[collection])

    def _db(self) -> _Database:
        if self._committed is None:
            raise StorageUnavailable("Object store not initialized")
        if self._in_transaction and self._transaction_db is not None:
            return self._transaction_db
        return self._committed

    def _delete_cascade(self, db: _Database, collection: str, key: Key) -> None:
        record = db.stores[collection][key]
        for child, field in dependents(collection):
            for child_key in db.keys_where(child, field, record["id"]):
                if child_key in db.stores[child]:
                    self._delete_cascade(db, child, child_key)
        db.remove(collection, key)

    def _key(self, schema: CollectionSchema, key: Key) -> Key:
        if len(schema.key) > 1:
            if not isinstance(key, tuple) or len(key) != len(schema.key):
                raise IntegrityError(f"Bad key for {schema.name}: {key!r}")
            return tuple(key)
        return key

    def _shape(self, schema: CollectionSchema, record: dict[str, Any]) -> dict[str, Any]:
        return {f.name: record.get(f.name, f.default) for f in schema.fields}

    def _save(self) -> None:
        """Write committed state to disk atomically."""
        if self.path is None or self._in_transaction or self._committed is None:
            return
        payload = self._dump(self._committed)
        temp_fd, temp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with open(temp_fd, "w") as f:
                json.dump(payload, f, indent=2, sort_keys=True)

            Path(temp_path).replace(self.path)
        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise

    def _dump(self, db: _Database) -> dict[str, Any]:
        stores = {}
        for name, store in db.stores.items():
            order = db.sequence[name]
            stores[name] = {
                "fields": db.fields[name],
                "indexes": [
                    {"field": i.field, "unique": i.unique, "nocase": i.nocase}
                    for i in db.indexes[name].values()
                ],
                "records": [store[k] for k in sorted(store, key=order.__getitem__)],
            }
        return {"version": FORMAT_VERSION, "stores": stores}

    def _load(self, db: _Database, payload: dict[str, Any]) -> None:
        if payload.get("version") != FORMAT_VERSION:
            raise ValueError(f"Unsupported object store version: {payload.get('version')}")
        for name, stored in payload["stores"].items():
            schema = get_schema(name)
            db.stores[name] = {}
            db.sequence[name] = {}
            db.fields[name] = list(stored["fields"])
            db.indexes[name] = {}
            db.index_data[name] = {}
            for record in stored["records"]:
                db.add(name, schema.key_of(record), record)
            for index in stored["indexes"]:
                db.create_index(name, IndexDef(**index))
