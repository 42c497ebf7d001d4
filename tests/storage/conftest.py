"""Shared fixtures for storage tests.

Most fixtures are parametrized over both backends, so every test that uses
them checks that the relational and the object-store backend behave the
same.
"""

import tempfile
from pathlib import Path

import pytest

from chowder.storage.backends import ObjectStoreBackend, SQLiteBackend
from chowder.storage.migrations import MigrationManager
from chowder.storage.repository import RepositoryManager

BACKENDS = ["sqlite", "objectstore"]


def make_backend(kind: str, directory: Path):
    if kind == "sqlite":
        return SQLiteBackend(directory / "chowder.db")
    return ObjectStoreBackend(directory / "chowder_store.json")


@pytest.fixture
def place_record():
    """Factory for stored place records with only the required fields set."""

    def make(place_id="p1", name="Golden Dragon", **overrides):
        record = {
            "id": place_id,
            "name": name,
            "latitude": 40.7158,
            "longitude": -73.9970,
            "createdAt": 1000,
            "updatedAt": 1000,
        }
        record.update(overrides)
        return record

    return make


@pytest.fixture
def temp_dir():
    """Temporary directory for test data."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(params=BACKENDS)
def backend_kind(request):
    return request.param


@pytest.fixture
def raw_backend(backend_kind, temp_dir):
    """Opened backend without any structures."""
    backend = make_backend(backend_kind, temp_dir)
    backend.initialize()
    yield backend
    backend.close()


@pytest.fixture
def backend(raw_backend):
    """Opened backend with the full schema and default categories."""
    MigrationManager(raw_backend).initialize()
    return raw_backend


@pytest.fixture
def manager(backend_kind, temp_dir, ticking_clock):
    """Opened repository manager."""
    manager = RepositoryManager(make_backend(backend_kind, temp_dir))
    manager.open()
    yield manager
    manager.close()


@pytest.fixture
def open_manager(temp_dir, ticking_clock):
    """Factory opening a repository manager on a backend of the given kind."""
    opened = []

    def open_(kind: str, name: str | None = None) -> RepositoryManager:
        directory = temp_dir / (name or kind)
        directory.mkdir(exist_ok=True)
        manager = RepositoryManager(make_backend(kind, directory))
        manager.open()
        opened.append(manager)
        return manager

    yield open_

    for manager in opened:
        manager.close()
