"""Tests for core models, errors and helpers."""

import re

import msgspec
import pytest

from chowder.core import clock
from chowder.core.errors import (
    ApiError,
    AuthenticationError,
    ChowderError,
    NotFound,
    OfflineError,
    SyncItemFailed,
    ValidationError,
)
from chowder.core.models import (
    Author,
    Category,
    CategoryType,
    Dish,
    List,
    Place,
    PlaceTag,
    RatingMode,
)


def place_data(**overrides):
    data = {
        "id": "p1",
        "name": "Golden Dragon",
        "latitude": 40.7158,
        "longitude": -73.9970,
        "createdAt": 1000,
        "updatedAt": 1000,
    }
    data.update(overrides)
    return data


class TestRecordConversion:
    """Test conversion between models and stored records."""

    def test_defaults(self) -> None:
        place = Place.from_record(place_data())

        assert place.dirty is True
        assert place.external_id is None
        assert place.rating_mode is RatingMode.OVERALL
        assert place.tag_ids == ()
        assert place.rating is None

    def test_stored_names_are_camel_case(self) -> None:
        record = Place.from_record(place_data(coverImageUri="file://x")).to_record()

        assert record["coverImageUri"] == "file://x"
        assert record["ratingMode"] == "overall"
        assert "lastSyncedAt" in record
        assert "cover_image_uri" not in record

    def test_computed_fields_are_not_stored(self) -> None:
        place = Place.from_record(place_data(tagIds=["t1"], rating=4.0))
        food_list = List.from_record(
            {"id": "l1", "name": "Dim sum", "createdAt": 1, "updatedAt": 1, "overallRating": 3.0}
        )

        assert place.tag_ids == ("t1",)
        assert "tagIds" not in place.to_record()
        assert "rating" not in place.to_record()
        assert "overallRating" not in food_list.to_record()

    def test_models_are_immutable(self) -> None:
        place = Place.from_record(place_data())

        with pytest.raises(AttributeError):
            place.name = "Other"

    def test_enum_values(self) -> None:
        category = Category.from_record(
            {"id": "c1", "name": "Buns", "type": "dish", "createdAt": 1}
        )

        assert category.type is CategoryType.DISH
        assert category.order == 0
        assert category.parent_id is None

    def test_place_tag_record(self) -> None:
        assert PlaceTag(place_id="p1", tag_id="t1").to_record() == {
            "placeId": "p1",
            "tagId": "t1",
        }


class TestValidation:
    """Test validation errors raised by from_record."""

    @pytest.mark.parametrize("rating", [0, 6])
    def test_dish_rating_bounds(self, rating) -> None:
        with pytest.raises(ValidationError) as exc_info:
            Dish.from_record(
                {
                    "id": "d1",
                    "visitId": "v1",
                    "name": "Har gow",
                    "rating": rating,
                    "createdAt": 1,
                    "updatedAt": 1,
                }
            )

        assert exc_info.value.field == "rating"

    def test_missing_required_field(self) -> None:
        with pytest.raises(ValidationError):
            Author.from_record({"id": "a1", "createdAt": 1})

    def test_unknown_rating_mode(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            Place.from_record(place_data(ratingMode="stars"))

        assert exc_info.value.field == "ratingMode"

    def test_validation_error_is_value_error(self) -> None:
        assert issubclass(ValidationError, ValueError)
        assert issubclass(ValidationError, ChowderError)

    def test_validation_wraps_msgspec_error(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            Place.from_record(place_data(latitude="north"))

        assert isinstance(exc_info.value.__cause__, msgspec.ValidationError)


class TestErrors:
    def test_not_found_message(self) -> None:
        error = NotFound("Place", "p1")

        assert str(error) == "Place not found: p1"
        assert isinstance(error, LookupError)

    def test_sync_item_failed_keeps_cause(self) -> None:
        cause = ApiError("Server exploded", 500)
        error = SyncItemFailed("Tag", "t1", cause)

        assert error.cause is cause
        assert "Tag t1" in str(error)

    def test_api_error_hierarchy(self) -> None:
        assert AuthenticationError("nope", 401).status_code == 401
        assert isinstance(OfflineError(), ApiError)
        assert OfflineError().status_code is None


class TestClock:
    def test_now_ms_is_epoch_milliseconds(self) -> None:
        assert clock.now_ms() > 1_600_000_000_000

    def test_new_ids_are_unique_hex(self) -> None:
        ids = {clock.new_id() for _ in range(100)}

        assert len(ids) == 100
        assert all(re.fullmatch(r"[0-9a-f]{32}", i) for i in ids)
