"""Tests for schema setup, additive migrations and default seeding."""

import logging

import pytest

from chowder.core.errors import StorageUnavailable
from chowder.storage.migrations import (
    DEFAULT_PLACE_CATEGORIES,
    MigrationManager,
    MigrationStats,
)
from chowder.storage.schema import (
    CATEGORIES,
    FIELD_MIGRATIONS,
    INDEX_MIGRATIONS,
    PLACES,
)


class TestInitialize:
    """Test MigrationManager.initialize on both backends."""

    def test_fresh_store_applies_everything(self, raw_backend):
        stats = MigrationManager(raw_backend).initialize()

        assert stats.applied == len(FIELD_MIGRATIONS) + len(INDEX_MIGRATIONS)
        assert stats.skipped == 0
        assert stats.failed == 0
        assert stats.seeded == len(DEFAULT_PLACE_CATEGORIES)
        assert stats.completed_at is not None

    def test_rerun_is_idempotent(self, raw_backend):
        MigrationManager(raw_backend).initialize()

        stats = MigrationManager(raw_backend).initialize()

        assert stats.applied == 0
        assert stats.skipped == len(FIELD_MIGRATIONS) + len(INDEX_MIGRATIONS)
        assert stats.failed == 0
        assert stats.seeded == 0
        assert raw_backend.count(CATEGORIES) == len(DEFAULT_PLACE_CATEGORIES)

    def test_rerun_keeps_user_data(self, raw_backend, place_record):
        MigrationManager(raw_backend).initialize()
        raw_backend.insert(PLACES, place_record(notes="Try the congee"))

        MigrationManager(raw_backend).initialize()

        assert raw_backend.get(PLACES, "p1")["notes"] == "Try the congee"

    def test_seeds_default_categories_in_order(self, raw_backend):
        MigrationManager(raw_backend).initialize()

        categories = sorted(raw_backend.all(CATEGORIES), key=lambda c: c["order"])

        assert [c["name"] for c in categories] == list(DEFAULT_PLACE_CATEGORIES)
        assert [c["order"] for c in categories] == list(range(15))
        assert all(c["type"] == "place" for c in categories)
        assert all(c["dirty"] is True for c in categories)

    def test_unexpected_errors_are_logged_not_raised(
        self, raw_backend, monkeypatch, caplog
    ):
        def broken_index(collection, index):
            raise RuntimeError("disk hiccup")

        monkeypatch.setattr(raw_backend, "add_index", broken_index)

        with caplog.at_level(logging.ERROR, logger="chowder.storage.migrations"):
            stats = MigrationManager(raw_backend).initialize()

        assert stats.failed == len(INDEX_MIGRATIONS)
        assert stats.applied == len(FIELD_MIGRATIONS)
        assert "disk hiccup" in stats.errors[0]
        assert "disk hiccup" in caplog.text
        assert stats.seeded == len(DEFAULT_PLACE_CATEGORIES)

    def test_unavailable_store_aborts(self, raw_backend, monkeypatch):
        def unavailable(collection, field):
            raise StorageUnavailable("gone")

        monkeypatch.setattr(raw_backend, "add_field", unavailable)

        with pytest.raises(StorageUnavailable):
            MigrationManager(raw_backend).initialize()


class TestRestoreDefaults:
    """Test re-running the category seed on demand."""

    def test_restores_deleted_default(self, backend):
        pizza = backend.find(CATEGORIES, "name", "Pizza")[0]
        backend.delete(CATEGORIES, pizza["id"])

        added = MigrationManager(backend).restore_defaults()

        assert added == 1
        restored = backend.find(CATEGORIES, "name", "Pizza")
        assert len(restored) == 1
        assert restored[0]["order"] == DEFAULT_PLACE_CATEGORIES.index("Pizza")

    def test_nothing_missing(self, backend):
        assert MigrationManager(backend).restore_defaults() == 0
        assert backend.count(CATEGORIES) == len(DEFAULT_PLACE_CATEGORIES)

    def test_dish_category_with_default_name_does_not_count(self, backend):
        ramen = backend.find(CATEGORIES, "name", "Ramen")[0]
        backend.update(CATEGORIES, ramen["id"], {"type": "dish"})

        assert MigrationManager(backend).restore_defaults() == 1


class TestMigrationStats:
    """Test MigrationStats bookkeeping."""

    def test_to_dict(self):
        from datetime import datetime, timedelta

        started = datetime(2024, 1, 1, 12, 0, 0)
        stats = MigrationStats(
            started_at=started,
            completed_at=started + timedelta(seconds=2),
            applied=3,
            skipped=1,
        )

        data = stats.to_dict()

        assert data["duration"] == 2.0
        assert data["applied"] == 3
        assert data["skipped"] == 1
        assert data["completed_at"] == "2024-01-01T12:00:02"

    def test_duration_none_while_running(self):
        from datetime import datetime

        assert MigrationStats(started_at=datetime.now()).duration is None
