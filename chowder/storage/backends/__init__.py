"""Interchangeable storage backends.

- **SQLiteBackend**: relational tables with declarative ``ON DELETE CASCADE``
- **ObjectStoreBackend**: keyed object stores with secondary indexes and
  explicit fan-out deletes, optionally persisted to a JSON file

Both expose the same record-level operations and produce identical
observable state for the same sequence of operations.
"""

from .base import Key, StorageBackend
from .objectstore import ObjectStoreBackend
from .sqlite import SQLiteBackend

__all__ = [
    "Key",
    "ObjectStoreBackend",
    "SQLiteBackend",
    "StorageBackend",
]
