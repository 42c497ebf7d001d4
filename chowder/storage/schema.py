"""Declarative description of every stored collection.

Both storage backends build their structures from these declarations, which
is what keeps them interchangeable: the relational backend turns parent
references into ``FOREIGN KEY ... ON DELETE CASCADE`` clauses, while the
object-store backend turns them into secondary indexes that drive explicit
fan-out deletes.

Fields listed in ``FIELD_MIGRATIONS`` are not part of the base structures;
they are added afterwards by the migration manager, exactly as they were
introduced over the life of the schema.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from chowder.core.errors import IntegrityError


class FieldType(str, Enum):
    """Storage type of a field."""

    TEXT = "TEXT"
    INTEGER = "INTEGER"
    REAL = "REAL"
    BOOLEAN = "BOOLEAN"


@dataclass(frozen=True)
class FieldDef:
    """A single stored field."""

    name: str
    type: FieldType = FieldType.TEXT
    nullable: bool = True
    default: Any = None
    check: str | None = None


@dataclass(frozen=True)
class ParentRef:
    """Reference to an owning record; deleting the owner deletes this record."""

    field: str
    collection: str


@dataclass(frozen=True)
class IndexDef:
    """Secondary index on a single field."""

    field: str
    unique: bool = False
    nocase: bool = False

    def name_for(self, collection: str) -> str:
        suffix = "_nocase" if self.nocase else ""
        return f"idx_{collection}_{self.field}{suffix}"


@dataclass(frozen=True)
class CollectionSchema:
    """Structure of one collection (table or object store)."""

    name: str
    fields: tuple[FieldDef, ...]
    key: tuple[str, ...] = ("id",)
    parents: tuple[ParentRef, ...] = ()
    indexes: tuple[IndexDef, ...] = ()

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def field(self, name: str) -> FieldDef:
        for f in self.fields:
            if f.name == name:
                return f
        raise KeyError(f"{self.name} has no field {name!r}")

    def key_of(self, record: dict[str, Any]) -> str | tuple[str, ...]:
        """Primary key of a record; composite keys are tuples."""
        if len(self.key) == 1:
            return record[self.key[0]]
        return tuple(record[k] for k in self.key)

    def normalize(self, record: dict[str, Any]) -> dict[str, Any]:
        """Return a record holding exactly this collection's fields."""
        unknown = set(record) - set(self.field_names)
        if unknown:
            raise IntegrityError(
                f"Unknown fields for {self.name}: {', '.join(sorted(unknown))}"
            )
        missing = [k for k in self.key if record.get(k) is None]
        if missing:
            raise IntegrityError(f"Missing key for {self.name}: {', '.join(missing)}")
        return {f.name: record.get(f.name, f.default) for f in self.fields}


def _synced_fields() -> tuple[FieldDef, ...]:
    return (
        FieldDef("dirty", FieldType.BOOLEAN, nullable=False, default=True),
        FieldDef("externalId"),
        FieldDef("lastSyncedAt", FieldType.INTEGER),
    )


AUTHOR = "author"
PLACES = "places"
LISTS = "lists"
LIST_ITEMS = "list_items"
VISITS = "visits"
DISHES = "dishes"
CATEGORIES = "categories"
TAGS = "tags"
PLACE_TAGS = "place_tags"

# Parent collections come before their children.
COLLECTIONS: dict[str, CollectionSchema] = {
    schema.name: schema
    for schema in (
        CollectionSchema(
            name=AUTHOR,
            fields=(
                FieldDef("id", nullable=False),
                FieldDef("displayName", nullable=False),
                FieldDef("avatarUri"),
                FieldDef("email"),
                FieldDef("createdAt", FieldType.INTEGER, nullable=False),
                *_synced_fields(),
            ),
        ),
        CollectionSchema(
            name=PLACES,
            fields=(
                FieldDef("id", nullable=False),
                FieldDef("name", nullable=False),
                FieldDef("address"),
                FieldDef("latitude", FieldType.REAL, nullable=False),
                FieldDef("longitude", FieldType.REAL, nullable=False),
                FieldDef("categoryId"),
                FieldDef("notes"),
                FieldDef("overallRatingManual", FieldType.REAL),
                FieldDef(
                    "ratingMode",
                    nullable=False,
                    default="overall",
                    check="ratingMode IN ('aggregate', 'overall')",
                ),
                FieldDef("coverImageUri"),
                FieldDef("createdAt", FieldType.INTEGER, nullable=False),
                FieldDef("updatedAt", FieldType.INTEGER, nullable=False),
                *_synced_fields(),
            ),
        ),
        CollectionSchema(
            name=LISTS,
            fields=(
                FieldDef("id", nullable=False),
                FieldDef("name", nullable=False),
                FieldDef("description"),
                FieldDef("category"),
                FieldDef("city"),
                FieldDef("createdAt", FieldType.INTEGER, nullable=False),
                FieldDef("updatedAt", FieldType.INTEGER, nullable=False),
                *_synced_fields(),
            ),
        ),
        CollectionSchema(
            name=LIST_ITEMS,
            fields=(
                FieldDef("id", nullable=False),
                FieldDef("listId", nullable=False),
                FieldDef("placeId", nullable=False),
                FieldDef("order", FieldType.INTEGER, nullable=False),
                FieldDef("createdAt", FieldType.INTEGER, nullable=False),
            ),
            parents=(ParentRef("listId", LISTS), ParentRef("placeId", PLACES)),
            indexes=(IndexDef("listId"), IndexDef("placeId")),
        ),
        CollectionSchema(
            name=VISITS,
            fields=(
                FieldDef("id", nullable=False),
                FieldDef("placeId", nullable=False),
                FieldDef("notes"),
                FieldDef("photoUri"),
                FieldDef("createdAt", FieldType.INTEGER, nullable=False),
                FieldDef("updatedAt", FieldType.INTEGER, nullable=False),
                *_synced_fields(),
            ),
            parents=(ParentRef("placeId", PLACES),),
            indexes=(IndexDef("placeId"),),
        ),
        CollectionSchema(
            name=DISHES,
            fields=(
                FieldDef("id", nullable=False),
                FieldDef("visitId", nullable=False),
                FieldDef("name", nullable=False),
                FieldDef("categoryId"),
                FieldDef(
                    "rating",
                    FieldType.INTEGER,
                    nullable=False,
                    check="rating >= 1 AND rating <= 5",
                ),
                FieldDef("notes"),
                FieldDef("photoUri"),
                FieldDef("createdAt", FieldType.INTEGER, nullable=False),
                FieldDef("updatedAt", FieldType.INTEGER, nullable=False),
                *_synced_fields(),
            ),
            parents=(ParentRef("visitId", VISITS),),
            indexes=(IndexDef("visitId"),),
        ),
        CollectionSchema(
            name=CATEGORIES,
            fields=(
                FieldDef("id", nullable=False),
                FieldDef("name", nullable=False),
                FieldDef(
                    "type", nullable=False, check="type IN ('place', 'dish')"
                ),
                FieldDef("parentId"),
                FieldDef("order", FieldType.INTEGER, nullable=False, default=0),
                FieldDef("createdAt", FieldType.INTEGER, nullable=False),
                *_synced_fields(),
            ),
        ),
        CollectionSchema(
            name=TAGS,
            fields=(
                FieldDef("id", nullable=False),
                FieldDef("name", nullable=False),
                FieldDef("color"),
                FieldDef("createdAt", FieldType.INTEGER, nullable=False),
                *_synced_fields(),
            ),
            indexes=(IndexDef("name", unique=True, nocase=True),),
        ),
        CollectionSchema(
            name=PLACE_TAGS,
            fields=(
                FieldDef("placeId", nullable=False),
                FieldDef("tagId", nullable=False),
            ),
            key=("placeId", "tagId"),
            parents=(ParentRef("placeId", PLACES), ParentRef("tagId", TAGS)),
            indexes=(IndexDef("placeId"), IndexDef("tagId")),
        ),
    )
}

SYNCED_COLLECTIONS = (AUTHOR, PLACES, LISTS, VISITS, DISHES, CATEGORIES, TAGS)

FIELD_MIGRATIONS: tuple[tuple[str, str], ...] = (
    *(
        (collection, field)
        for collection in SYNCED_COLLECTIONS
        for field in ("dirty", "externalId", "lastSyncedAt")
    ),
    (AUTHOR, "email"),
    (PLACES, "coverImageUri"),
)

INDEX_MIGRATIONS: tuple[tuple[str, IndexDef], ...] = (
    *((collection, IndexDef("dirty")) for collection in SYNCED_COLLECTIONS),
    *((collection, IndexDef("externalId")) for collection in SYNCED_COLLECTIONS),
    (CATEGORIES, IndexDef("type")),
)


def get_schema(collection: str) -> CollectionSchema:
    """Look up a collection schema by name."""
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise KeyError(f"Unknown collection: {collection}") from None


def base_fields(collection: str) -> tuple[FieldDef, ...]:
    """Fields present before any migration ran."""
    migrated = {f for c, f in FIELD_MIGRATIONS if c == collection}
    return tuple(f for f in get_schema(collection).fields if f.name not in migrated)


def dependents(collection: str) -> list[tuple[str, str]]:
    """Collections whose records are owned by records of ``collection``.

    Returns ``(child_collection, parent_field)`` pairs.
    """
    return [
        (schema.name, ref.field)
        for schema in COLLECTIONS.values()
        for ref in schema.parents
        if ref.collection == collection
    ]
