"""Schema setup, additive migrations and default taxonomy seeding.

Runs on every start. Creating structures is idempotent, every migration only
ever adds a field or an index, and re-applying one that already exists is
detected through ``StructureExists`` and counted as skipped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from chowder.core import clock
from chowder.core.errors import StorageUnavailable, StructureExists
from chowder.core.models import Category, CategoryType
from chowder.storage.backends.base import StorageBackend
from chowder.storage.schema import CATEGORIES, FIELD_MIGRATIONS, INDEX_MIGRATIONS

logger = logging.getLogger(__name__)

DEFAULT_PLACE_CATEGORIES = (
    "Cantonese",
    "Sichuan",
    "Chinese (General)",
    "Japanese (general)",
    "Thai (General)",
    "Vietnamese (General)",
    "Pho",
    "Ramen",
    "Indian (General)",
    "Bengali",
    "Halal",
    "Kosher",
    "Italian (General)",
    "Pizza",
    "Bagels",
)


@dataclass
class MigrationStats:
    """Outcome of one schema initialization run."""

    started_at: datetime
    completed_at: datetime | None = None
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    seeded: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def duration(self) -> float | None:
        """Get run duration in seconds."""
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
            "duration": self.duration,
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
            "seeded": self.seeded,
            "errors": self.errors,
        }


class MigrationManager:
    """Creates and evolves the durable structures of a backend."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend

    def initialize(self) -> MigrationStats:
        """Bring the backend's structures up to date and seed defaults.

        Unexpected migration errors are logged and counted; they never abort
        startup. Only an unavailable store does.
        """
        stats = MigrationStats(started_at=datetime.now())

        self.backend.create_structures()

        for collection, name in FIELD_MIGRATIONS:
            self._apply(
                stats,
                f"{collection}.{name}",
                lambda: self.backend.add_field(collection, name),
            )

        for collection, index in INDEX_MIGRATIONS:
            self._apply(
                stats,
                index.name_for(collection),
                lambda: self.backend.add_index(collection, index),
            )

        stats.seeded = self.seed_defaults()
        stats.completed_at = datetime.now()

        logger.info(
            f"Schema ready on {self.backend.name}: {stats.applied} applied, "
            f"{stats.skipped} skipped, {stats.failed} failed, "
            f"{stats.seeded} categories seeded"
        )
        return stats

    def seed_defaults(self) -> int:
        """Insert default place categories whose names are not present yet."""
        existing = {
            record["name"]
            for record in self.backend.find(CATEGORIES, "type", CategoryType.PLACE.value)
        }

        seeded = 0
        for order, name in enumerate(DEFAULT_PLACE_CATEGORIES):
            if name in existing:
                continue
            category = Category(
                id=clock.new_id(),
                name=name,
                type=CategoryType.PLACE,
                order=order,
                created_at=clock.now_ms(),
            )
            self.backend.insert(CATEGORIES, category.to_record())
            seeded += 1

        if seeded:
            logger.debug(f"Seeded {seeded} default place categories")
        return seeded

    def restore_defaults(self) -> int:
        """Re-run only the default category seed."""
        return self.seed_defaults()

    def _apply(self, stats: MigrationStats, label: str, migration) -> None:
        try:
            migration()
        except StructureExists:
            stats.skipped += 1
            return
        except StorageUnavailable:
            raise
        except Exception as e:
            stats.failed += 1
            stats.errors.append(f"{label}: {e}")
            logger.error(f"Migration {label} failed: {e}")
            return

        stats.applied += 1
        logger.debug(f"Applied migration {label}")
