"""Local persistence for places, lists, visits, dishes and taxonomy.

- **Backends**: relational (SQLite) and object store, interchangeable
- **Factory**: picks the backend for the runtime environment once
- **Migrations**: idempotent schema setup and default category seed
- **Repositories**: async facade with dirty tracking and computed fields
- **Backup**: whole-store JSON export and validated restore
"""

from chowder.storage.backends import ObjectStoreBackend, SQLiteBackend, StorageBackend
from chowder.storage.backup import BackupManager, BackupStats, Snapshot
from chowder.storage.factory import create_backend, detect_runtime
from chowder.storage.migrations import (
    DEFAULT_PLACE_CATEGORIES,
    MigrationManager,
    MigrationStats,
)
from chowder.storage.repository import (
    AuthorRepository,
    CategoryRepository,
    DishRepository,
    ListRepository,
    PlaceRepository,
    Repository,
    RepositoryManager,
    TagRepository,
    VisitRepository,
)

__all__ = [
    # Backends
    "StorageBackend",
    "SQLiteBackend",
    "ObjectStoreBackend",
    "create_backend",
    "detect_runtime",
    # Migrations
    "DEFAULT_PLACE_CATEGORIES",
    "MigrationManager",
    "MigrationStats",
    # Repositories
    "Repository",
    "AuthorRepository",
    "PlaceRepository",
    "ListRepository",
    "VisitRepository",
    "DishRepository",
    "CategoryRepository",
    "TagRepository",
    "RepositoryManager",
    # Backup
    "BackupManager",
    "BackupStats",
    "Snapshot",
]
