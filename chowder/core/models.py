"""Core data models for places, visits, dishes and their taxonomy.

Every model is an immutable ``msgspec.Struct`` whose serialized field names
are camelCase, so the same shape is used by both storage backends, the
backup format and the remote API payloads.

Key components:
- Author: singleton local profile
- Place, Visit, Dish: what was visited and what was eaten there
- List, ListItem: ordered, user-curated groups of places
- Category, Tag, PlaceTag: taxonomy and free-form labels

Synced models carry the bookkeeping fields ``dirty``, ``external_id`` and
``last_synced_at``. A record is dirty until the remote authority has
acknowledged its current state.
"""

from enum import Enum
from typing import Annotated, Any, ClassVar

import msgspec

from .errors import ValidationError


class RatingMode(str, Enum):
    """How a place's displayed rating is derived."""

    AGGREGATE = "aggregate"
    OVERALL = "overall"


class CategoryType(str, Enum):
    """What a category classifies."""

    PLACE = "place"
    DISH = "dish"


DishRating = Annotated[int, msgspec.Meta(ge=1, le=5)]


class Record(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """Base class for all stored records."""

    __computed__: ClassVar[tuple[str, ...]] = ()

    id: str

    def to_record(self) -> dict[str, Any]:
        """Convert to the stored representation (camelCase, no computed fields)."""
        data = msgspec.to_builtins(self)
        for name in self.__computed__:
            data.pop(name, None)
        return data

    @classmethod
    def from_record(cls, data: dict[str, Any]):
        """Build a model from a stored record, validating every field."""
        try:
            return msgspec.convert(data, cls)
        except msgspec.ValidationError as e:
            field = _error_path(str(e))
            raise ValidationError(field, str(e)) from e


class SyncedRecord(Record, frozen=True, kw_only=True, rename="camel"):
    """Record that is pushed to the remote authority."""

    dirty: bool = True
    external_id: str | None = None
    last_synced_at: int | None = None
    created_at: int


class Author(SyncedRecord, frozen=True, kw_only=True, rename="camel"):
    """Singleton local profile."""

    display_name: str
    avatar_uri: str | None = None
    email: str | None = None


class Place(SyncedRecord, frozen=True, kw_only=True, rename="camel"):
    """A place the user has saved.

    ``tag_ids`` and ``rating`` are computed when the place is read and are
    never written to storage.
    """

    __computed__: ClassVar[tuple[str, ...]] = ("tagIds", "rating")

    name: str
    address: str | None = None
    latitude: float
    longitude: float
    category_id: str | None = None
    notes: str | None = None
    overall_rating_manual: float | None = None
    rating_mode: RatingMode = RatingMode.OVERALL
    cover_image_uri: str | None = None
    updated_at: int

    tag_ids: tuple[str, ...] = ()
    rating: float | None = None


class List(SyncedRecord, frozen=True, kw_only=True, rename="camel"):
    """A named, ordered group of places."""

    __computed__: ClassVar[tuple[str, ...]] = ("overallRating",)

    name: str
    description: str | None = None
    category: str | None = None
    city: str | None = None
    updated_at: int

    overall_rating: float | None = None


class ListItem(Record, frozen=True, kw_only=True, rename="camel"):
    """Membership of a place in a list at a given position."""

    list_id: str
    place_id: str
    order: int
    created_at: int


class Visit(SyncedRecord, frozen=True, kw_only=True, rename="camel"):
    """A single visit to a place."""

    place_id: str
    notes: str | None = None
    photo_uri: str | None = None
    updated_at: int


class Dish(SyncedRecord, frozen=True, kw_only=True, rename="camel"):
    """A dish eaten during a visit."""

    visit_id: str
    name: str
    category_id: str | None = None
    rating: DishRating
    notes: str | None = None
    photo_uri: str | None = None
    updated_at: int


class Category(SyncedRecord, frozen=True, kw_only=True, rename="camel"):
    """Place or dish category.

    Categories are soft references: deleting one leaves any ``category_id``
    or ``parent_id`` pointing at it untouched.
    """

    name: str
    type: CategoryType
    parent_id: str | None = None
    order: int = 0


class Tag(SyncedRecord, frozen=True, kw_only=True, rename="camel"):
    """Free-form label; names are unique ignoring case."""

    name: str
    color: str | None = None


class PlaceTag(msgspec.Struct, frozen=True, kw_only=True, rename="camel"):
    """Many-to-many link between a place and a tag."""

    place_id: str
    tag_id: str

    def to_record(self) -> dict[str, Any]:
        return msgspec.to_builtins(self)


def _error_path(message: str) -> str:
    """Pull the offending field out of a msgspec validation message."""
    # msgspec reports e.g. "Expected `int` >= 1 - at `$.rating`"
    if "at `$." in message:
        return message.rsplit("at `$.", 1)[1].rstrip("`").split(".")[0].split("[")[0]
    return "record"
