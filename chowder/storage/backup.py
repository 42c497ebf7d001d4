"""Whole-store export to JSON and validated, atomic restore.

A snapshot holds every stored field of every record, camelCase, exactly as
the backends keep them, so a restore reproduces ids, dirty flags and
external ids verbatim. Computed fields are never written.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import msgspec

from chowder.core import clock
from chowder.core.errors import ImportFormatInvalid, IntegrityError
from chowder.core.models import (
    Author,
    Category,
    Dish,
    List,
    ListItem,
    Place,
    PlaceTag,
    Tag,
    Visit,
)

from .repository import RepositoryManager
from .schema import (
    AUTHOR,
    CATEGORIES,
    DISHES,
    LIST_ITEMS,
    LISTS,
    PLACE_TAGS,
    PLACES,
    TAGS,
    VISITS,
)

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1

# (snapshot attribute, collection), parents before children.
RESTORE_ORDER = (
    ("categories", CATEGORIES),
    ("tags", TAGS),
    ("places", PLACES),
    ("lists", LISTS),
    ("visits", VISITS),
    ("dishes", DISHES),
    ("list_items", LIST_ITEMS),
    ("place_tags", PLACE_TAGS),
)

# Children before parents; the author goes last.
CLEAR_ORDER = (
    PLACE_TAGS,
    DISHES,
    VISITS,
    LIST_ITEMS,
    PLACES,
    LISTS,
    CATEGORIES,
    TAGS,
    AUTHOR,
)


class Snapshot(msgspec.Struct, kw_only=True, rename="camel"):
    """Serialized form of the whole local store.

    Every key is required; a payload missing one is rejected before anything
    is deleted. ``author`` may be null but must be present.
    """

    version: int
    exported_at: int
    author: Author | None
    places: list[Place]
    lists: list[List]
    list_items: list[ListItem]
    visits: list[Visit]
    dishes: list[Dish]
    categories: list[Category]
    tags: list[Tag]
    place_tags: list[PlaceTag]


@dataclass
class BackupStats:
    """Counts of records restored from a snapshot."""

    started_at: datetime
    completed_at: datetime | None = None
    counts: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def duration(self) -> float | None:
        """Get restore duration in seconds."""
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
            "counts": self.counts,
            "total": self.total,
        }


class BackupManager:
    """Exports and restores the complete local store."""

    def __init__(self, manager: RepositoryManager):
        self.manager = manager
        self.backend = manager.backend

    def export(self) -> dict[str, Any]:
        """Snapshot every collection as plain builtins."""
        authors = self.backend.all(AUTHOR)
        payload: dict[str, Any] = {
            "version": BACKUP_VERSION,
            "exportedAt": clock.now_ms(),
            "author": authors[0] if authors else None,
        }
        for attribute, collection in RESTORE_ORDER:
            payload[_camel(attribute)] = self.backend.all(collection)
        return payload

    def export_json(self) -> bytes:
        """Snapshot encoded as JSON."""
        return msgspec.json.format(msgspec.json.encode(self.export()), indent=2)

    def export_to(self, path: Path | str) -> Path:
        """Write a snapshot to a file and return its path."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.export_json())
        logger.info(f"Exported backup to {path}")
        return path

    def import_snapshot(self, payload: bytes | str | dict[str, Any]) -> BackupStats:
        """Replace the whole store with a snapshot.

        The snapshot is fully validated before anything is deleted. The
        replacement itself runs in one transaction, so a failure part way
        leaves the previous data in place.
        """
        snapshot = self._decode(payload)
        stats = BackupStats(started_at=datetime.now())

        try:
            with self.manager.transaction():
                for collection in CLEAR_ORDER:
                    self.backend.clear(collection)

                if snapshot.author is not None:
                    self.backend.insert(AUTHOR, snapshot.author.to_record())
                stats.counts[AUTHOR] = 1 if snapshot.author is not None else 0

                for attribute, collection in RESTORE_ORDER:
                    records = getattr(snapshot, attribute)
                    for record in records:
                        self.backend.insert(collection, record.to_record())
                    stats.counts[collection] = len(records)
        except IntegrityError as e:
            raise ImportFormatInvalid(f"Backup is inconsistent: {e}") from e

        stats.completed_at = datetime.now()
        logger.info(f"Restored {stats.total} records from backup")
        return stats

    def import_from(self, path: Path | str) -> BackupStats:
        """Restore from a snapshot file."""
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ImportFormatInvalid(f"Cannot read backup {path}: {e}") from e
        return self.import_snapshot(data)

    def _decode(self, payload: bytes | str | dict[str, Any]) -> Snapshot:
        try:
            if isinstance(payload, bytes | str):
                snapshot = msgspec.json.decode(payload, type=Snapshot)
            else:
                snapshot = msgspec.convert(payload, Snapshot)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            raise ImportFormatInvalid(f"Invalid backup: {e}") from e

        if snapshot.version != BACKUP_VERSION:
            raise ImportFormatInvalid(
                f"Unsupported backup version: {snapshot.version}"
            )
        return snapshot


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
