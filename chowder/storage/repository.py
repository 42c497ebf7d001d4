"""Repository facade over the active storage backend.

One repository per entity type gives a uniform create/get/list/update/delete
surface plus the sync bookkeeping operations (``list_dirty`` and
``mark_synced``). Repositories never branch on which backend is active; they
only use the primitives every backend provides.

Every ordinary write marks the record dirty. Only ``mark_synced`` clears the
flag, and it touches nothing but the sync bookkeeping fields.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

import msgspec

from chowder.core import clock
from chowder.core.errors import (
    AuthorExists,
    DuplicateName,
    IntegrityError,
    NotFound,
    ValidationError,
)
from chowder.core.models import (
    Author,
    Category,
    CategoryType,
    Dish,
    List,
    ListItem,
    Place,
    PlaceTag,
    RatingMode,
    Record,
    Tag,
    Visit,
)

from .backends.base import StorageBackend
from .migrations import MigrationManager, MigrationStats
from .schema import (
    AUTHOR,
    CATEGORIES,
    COLLECTIONS,
    DISHES,
    LIST_ITEMS,
    LISTS,
    PLACE_TAGS,
    PLACES,
    SYNCED_COLLECTIONS,
    TAGS,
    VISITS,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=Record)

PROTECTED_FIELDS = frozenset(
    {"id", "dirty", "external_id", "last_synced_at", "created_at", "updated_at"}
)


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def _criterion_value(value: Any) -> Any:
    if isinstance(value, CategoryType | RatingMode):
        return value.value
    return value


class Repository(Generic[M]):
    """Uniform async CRUD for one synced entity type."""

    collection: str
    model: type[M]
    entity: str

    def __init__(self, backend: StorageBackend):
        self.backend = backend
        self._encode_names = {
            f.name: f.encode_name for f in msgspec.structs.fields(self.model)
        }
        self._computed = {
            name
            for name, encoded in self._encode_names.items()
            if encoded in self.model.__computed__
        }
        self._has_updated_at = "updated_at" in self._encode_names

    async def create(self, **fields: Any) -> M:
        """Create a new dirty record with a freshly minted id."""
        self._check_fields(fields)
        now = clock.now_ms()
        values = {"id": clock.new_id(), "created_at": now, **fields}
        if self._has_updated_at:
            values["updated_at"] = now

        record = self._build(values)
        self._insert(record)
        logger.debug(f"Created {self.entity} {record['id']}")
        return self._to_model(record)

    async def get(self, record_id: str) -> M:
        """Get a record by id, raising NotFound if it does not exist."""
        record = self.backend.get(self.collection, record_id)
        if record is None:
            raise NotFound(self.entity, record_id)
        return self._to_model(record)

    async def find(self, record_id: str) -> M | None:
        """Get a record by id, or None."""
        record = self.backend.get(self.collection, record_id)
        return self._to_model(record) if record is not None else None

    async def list(self, **criteria: Any) -> list[M]:
        """All records matching exact-value criteria, in default order."""
        if criteria:
            unknown = set(criteria) - set(self._encode_names)
            if unknown:
                raise ValueError(
                    f"Unknown {self.entity} fields: {', '.join(sorted(unknown))}"
                )
            conditions = [
                (self._encode_names[name], _criterion_value(value))
                for name, value in criteria.items()
            ]
            first_field, first_value = conditions[0]
            records = [
                r
                for r in self.backend.find(self.collection, first_field, first_value)
                if all(r[field] == value for field, value in conditions[1:])
            ]
        else:
            records = self.backend.all(self.collection)

        return [self._to_model(r) for r in self._sort(records)]

    async def update(self, record_id: str, **fields: Any) -> M:
        """Merge business fields into a record and mark it dirty."""
        self._check_fields(fields)
        current = self.backend.get(self.collection, record_id)
        if current is None:
            raise NotFound(self.entity, record_id)

        values = {name: current[encoded] for name, encoded in self._stored_names()}
        values.update(fields)
        values["dirty"] = True
        if self._has_updated_at:
            values["updated_at"] = clock.now_ms()

        record = self._build(values)
        changes = {
            key: value
            for key, value in record.items()
            if key not in current or current[key] != value
        }
        changes["dirty"] = True
        self._write_update(record_id, changes, fields)
        return await self.get(record_id)

    async def delete(self, record_id: str) -> bool:
        """Delete a record and everything it owns, atomically."""
        with self.backend.begin_transaction():
            if not self.backend.delete(self.collection, record_id):
                raise NotFound(self.entity, record_id)
        logger.debug(f"Deleted {self.entity} {record_id}")
        return True

    async def mark_synced(
        self, record_id: str, external_id: str, synced_at: int | None = None
    ) -> None:
        """Record the remote acknowledgment of a record's current state."""
        changes = {
            "externalId": external_id,
            "dirty": False,
            "lastSyncedAt": synced_at if synced_at is not None else clock.now_ms(),
        }
        if not self.backend.update(self.collection, record_id, changes):
            raise NotFound(self.entity, record_id)

    async def list_dirty(self) -> list[M]:
        """Records not yet acknowledged by the remote, in insertion order."""
        return [
            self._to_model(r) for r in self.backend.find(self.collection, "dirty", True)
        ]

    async def count(self) -> int:
        return self.backend.count(self.collection)

    def _check_fields(self, fields: dict[str, Any]) -> None:
        protected = (PROTECTED_FIELDS | self._computed) & set(fields)
        if protected:
            name = sorted(protected)[0]
            raise ValidationError(name, "cannot be set directly")

    def _stored_names(self) -> Iterator[tuple[str, str]]:
        for name, encoded in self._encode_names.items():
            if name not in self._computed:
                yield name, encoded

    def _build(self, values: dict[str, Any]) -> dict[str, Any]:
        """Validate field values and return the stored record."""
        try:
            draft = self.model(**values)
        except TypeError as e:
            raise ValidationError(self.entity, str(e)) from e
        # Constructors do not type-check; a conversion round does.
        return self.model.from_record(draft.to_record()).to_record()

    def _insert(self, record: dict[str, Any]) -> None:
        self.backend.insert(self.collection, record)

    def _write_update(
        self, record_id: str, changes: dict[str, Any], fields: dict[str, Any]
    ) -> None:
        self.backend.update(self.collection, record_id, changes)

    def _to_model(self, record: dict[str, Any]) -> M:
        return self.model.from_record(record)

    def _sort(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Newest first; ties keep insertion order."""
        return sorted(records, key=lambda r: r["createdAt"], reverse=True)


class AuthorRepository(Repository[Author]):
    """The singleton local profile."""

    collection = AUTHOR
    model = Author
    entity = "Author"

    async def get_current(self) -> Author | None:
        """The local profile, or None before one is created."""
        records = self.backend.all(AUTHOR)
        return self._to_model(records[0]) if records else None

    def _insert(self, record: dict[str, Any]) -> None:
        with self.backend.begin_transaction():
            existing = self.backend.all(AUTHOR)
            if existing:
                raise AuthorExists(existing[0]["id"])
            self.backend.insert(AUTHOR, record)


class PlaceRepository(Repository[Place]):
    """Places, hydrated with their tag ids and effective rating."""

    collection = PLACES
    model = Place
    entity = "Place"

    async def add_tag(self, place_id: str, tag_id: str) -> None:
        """Attach a tag to a place; attaching twice is a no-op."""
        await self.get(place_id)
        if self.backend.get(TAGS, tag_id) is None:
            raise NotFound("Tag", tag_id)
        self.backend.put(
            PLACE_TAGS, PlaceTag(place_id=place_id, tag_id=tag_id).to_record()
        )

    async def remove_tag(self, place_id: str, tag_id: str) -> bool:
        """Detach a tag from a place."""
        return self.backend.delete(PLACE_TAGS, (place_id, tag_id))

    async def tag_ids(self, place_id: str) -> list[str]:
        return [r["tagId"] for r in self.backend.find(PLACE_TAGS, "placeId", place_id)]

    def rating_of(self, record: dict[str, Any]) -> float | None:
        """Effective rating of a stored place record.

        Overall mode uses the manual rating as is; aggregate mode averages the
        ratings of every dish of every visit of the place.
        """
        if record["ratingMode"] == RatingMode.AGGREGATE.value:
            ratings = [
                dish["rating"]
                for visit in self.backend.find(VISITS, "placeId", record["id"])
                for dish in self.backend.find(DISHES, "visitId", visit["id"])
                if dish["rating"] is not None
            ]
            return _mean(ratings)
        return record["overallRatingManual"]

    def _to_model(self, record: dict[str, Any]) -> Place:
        tag_ids = [
            r["tagId"] for r in self.backend.find(PLACE_TAGS, "placeId", record["id"])
        ]
        return Place.from_record(
            {**record, "tagIds": tag_ids, "rating": self.rating_of(record)}
        )


class ListRepository(Repository[List]):
    """Lists and their ordered place memberships."""

    collection = LISTS
    model = List
    entity = "List"

    def __init__(self, backend: StorageBackend, places: PlaceRepository):
        super().__init__(backend)
        self.places = places

    async def add_place(self, list_id: str, place_id: str) -> ListItem:
        """Append a place at ``max(order) + 1`` and touch the list."""
        with self.backend.begin_transaction():
            await self.get(list_id)
            await self.places.get(place_id)

            orders = [i["order"] for i in self.backend.find(LIST_ITEMS, "listId", list_id)]
            item = ListItem(
                id=clock.new_id(),
                list_id=list_id,
                place_id=place_id,
                order=max(orders) + 1 if orders else 0,
                created_at=clock.now_ms(),
            )
            self.backend.insert(LIST_ITEMS, item.to_record())
            self._touch(list_id)
        return item

    async def remove_place(self, list_id: str, place_id: str) -> bool:
        """Remove a place from a list; remaining orders are left as they are."""
        with self.backend.begin_transaction():
            await self.get(list_id)
            removed = False
            for item in self.backend.find(LIST_ITEMS, "listId", list_id):
                if item["placeId"] == place_id:
                    removed = self.backend.delete(LIST_ITEMS, item["id"]) or removed
            if removed:
                self._touch(list_id)
        return removed

    async def get_items(self, list_id: str) -> list[ListItem]:
        """Items of a list by ascending order, ties by insertion order."""
        items = self.backend.find(LIST_ITEMS, "listId", list_id)
        return [ListItem.from_record(i) for i in sorted(items, key=lambda i: i["order"])]

    def _touch(self, list_id: str) -> None:
        self.backend.update(
            LISTS, list_id, {"updatedAt": clock.now_ms(), "dirty": True}
        )

    def _to_model(self, record: dict[str, Any]) -> List:
        ratings = []
        for item in self.backend.find(LIST_ITEMS, "listId", record["id"]):
            place = self.backend.get(PLACES, item["placeId"])
            if place is None:
                continue
            rating = self.places.rating_of(place)
            if rating is not None:
                ratings.append(rating)
        return List.from_record({**record, "overallRating": _mean(ratings)})

    def _sort(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return sorted(records, key=lambda r: r["updatedAt"], reverse=True)


class VisitRepository(Repository[Visit]):
    collection = VISITS
    model = Visit
    entity = "Visit"


class DishRepository(Repository[Dish]):
    collection = DISHES
    model = Dish
    entity = "Dish"

    async def list_for_place(self, place_id: str) -> list[Dish]:
        """Dishes of every visit to a place, newest first."""
        records = [
            dish
            for visit in self.backend.find(VISITS, "placeId", place_id)
            for dish in self.backend.find(DISHES, "visitId", visit["id"])
        ]
        return [self._to_model(r) for r in self._sort(records)]


class CategoryRepository(Repository[Category]):
    """Place and dish categories; references to them are never cascaded."""

    collection = CATEGORIES
    model = Category
    entity = "Category"

    async def reorder(self, category_id: str, order: int) -> Category:
        return await self.update(category_id, order=order)

    def _sort(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return sorted(records, key=lambda r: (r["order"], r["name"]))


class TagRepository(Repository[Tag]):
    """Tags, with names unique regardless of case."""

    collection = TAGS
    model = Tag
    entity = "Tag"

    async def list_for_place(self, place_id: str) -> list[Tag]:
        records = []
        for link in self.backend.find(PLACE_TAGS, "placeId", place_id):
            record = self.backend.get(TAGS, link["tagId"])
            if record is not None:
                records.append(record)
        return [self._to_model(r) for r in self._sort(records)]

    def _name_taken(self, name: str, exclude_id: str | None = None) -> bool:
        wanted = name.casefold()
        return any(
            r["name"].casefold() == wanted and r["id"] != exclude_id
            for r in self.backend.all(TAGS)
        )

    def _insert(self, record: dict[str, Any]) -> None:
        if self._name_taken(record["name"]):
            raise DuplicateName(record["name"])
        try:
            self.backend.insert(TAGS, record)
        except IntegrityError as e:
            raise DuplicateName(record["name"]) from e

    def _write_update(
        self, record_id: str, changes: dict[str, Any], fields: dict[str, Any]
    ) -> None:
        if "name" in changes and self._name_taken(changes["name"], record_id):
            raise DuplicateName(changes["name"])
        try:
            self.backend.update(TAGS, record_id, changes)
        except IntegrityError as e:
            raise DuplicateName(fields.get("name", "")) from e

    def _sort(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return sorted(records, key=lambda r: r["name"].casefold())


class RepositoryManager:
    """Owns the backend connection and every repository over it."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend
        self.author = AuthorRepository(backend)
        self.places = PlaceRepository(backend)
        self.lists = ListRepository(backend, self.places)
        self.visits = VisitRepository(backend)
        self.dishes = DishRepository(backend)
        self.categories = CategoryRepository(backend)
        self.tags = TagRepository(backend)
        self.migration_stats: MigrationStats | None = None

    def open(self) -> MigrationStats:
        """Open the backend and bring its schema up to date."""
        self.backend.initialize()
        self.migration_stats = MigrationManager(self.backend).initialize()
        return self.migration_stats

    def close(self) -> None:
        self.backend.close()

    @contextmanager
    def transaction(self):
        """Transaction context manager."""
        with self.backend.begin_transaction():
            yield self

    def repositories(self) -> list[Repository]:
        """Synced repositories in push order (parents before children)."""
        return [
            self.author,
            self.places,
            self.lists,
            self.visits,
            self.dishes,
            self.categories,
            self.tags,
        ]

    def statistics(self) -> dict[str, dict[str, int]]:
        """Total and dirty record counts per collection."""
        stats = {}
        for name in COLLECTIONS:
            entry = {"total": self.backend.count(name)}
            if name in SYNCED_COLLECTIONS:
                entry["dirty"] = len(self.backend.find(name, "dirty", True))
            stats[name] = entry
        return stats

    def restore_defaults(self) -> int:
        """Re-insert any missing default place categories."""
        return MigrationManager(self.backend).restore_defaults()

