"""Base storage backend interface."""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from chowder.storage.schema import IndexDef

Key = str | tuple[str, ...]


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    Records are plain dictionaries keyed by camelCase field name. Every
    backend returns records holding all schema fields (``None`` when unset)
    with booleans as ``bool``, and lists records in insertion order.
    """

    name: str = "base"

    @abstractmethod
    def initialize(self) -> None:
        """Open the underlying store, raising StorageUnavailable on failure."""
        pass

    @abstractmethod
    def create_structures(self) -> None:
        """Create missing collections and base indexes (idempotent)."""
        pass

    @abstractmethod
    def add_field(self, collection: str, field: str) -> None:
        """Add a schema field, raising StructureExists if already present."""
        pass

    @abstractmethod
    def add_index(self, collection: str, index: IndexDef) -> None:
        """Add a secondary index, raising StructureExists if already present."""
        pass

    @abstractmethod
    def get(self, collection: str, key: Key) -> dict[str, Any] | None:
        """Read a record by primary key."""
        pass

    @abstractmethod
    def all(self, collection: str) -> list[dict[str, Any]]:
        """Read every record of a collection."""
        pass

    @abstractmethod
    def find(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        """Read records whose ``field`` equals ``value``."""
        pass

    @abstractmethod
    def insert(self, collection: str, record: dict[str, Any]) -> None:
        """Insert a new record, raising IntegrityError on key or unique conflicts."""
        pass

    @abstractmethod
    def put(self, collection: str, record: dict[str, Any]) -> None:
        """Insert or replace a record."""
        pass

    @abstractmethod
    def update(self, collection: str, key: Key, changes: dict[str, Any]) -> bool:
        """Merge ``changes`` into a record; False if it does not exist."""
        pass

    @abstractmethod
    def delete(self, collection: str, key: Key) -> bool:
        """Delete a record and everything it owns; False if it does not exist."""
        pass

    @abstractmethod
    def count(self, collection: str) -> int:
        """Count records in a collection."""
        pass

    @abstractmethod
    def clear(self, collection: str) -> None:
        """Delete every record of a collection (owned records included)."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close backend connections."""
        pass

    def supports_transactions(self) -> bool:
        """Check if backend supports transactions."""
        return False

    @contextmanager
    def begin_transaction(self) -> Iterator[None]:
        """Begin a transaction (if supported)."""
        yield
