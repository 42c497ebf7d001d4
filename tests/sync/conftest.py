"""Fixtures for sync tests."""

import asyncio

import pytest

from chowder.core.errors import ApiError
from chowder.storage.factory import RUNTIMES, create_backend
from chowder.storage.repository import RepositoryManager
from chowder.storage.schema import CATEGORIES
from chowder.sync.connectivity import ConnectivityState
from chowder.sync.engine import SyncEngine
from chowder.sync.session import TokenSession


class FakeApi:
    """Records requests and answers like the remote service.

    ``failing_names`` makes pushes of records with those names fail,
    ``gate`` holds every request until it is set and ``after_request`` is
    called with the number of requests seen so far.
    """

    def __init__(self):
        self.calls = []
        self.failing_names = set()
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()
        self.after_request = None
        self.response = None
        self._ids = 0

    async def request(self, method, path, data=None):
        self.calls.append((method, path, data))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.after_request is not None:
            self.after_request(len(self.calls))
        if data and data.get("name") in self.failing_names:
            raise ApiError("Server exploded", 500)
        if self.response is not None:
            return self.response
        self._ids += 1
        return {"id": f"remote-{self._ids}"}

    async def put(self, path, data=None):
        return await self.request("PUT", path, data)

    @property
    def paths(self):
        return [(method, path) for method, path, _ in self.calls]


@pytest.fixture(params=RUNTIMES)
def manager(request, tmp_path, ticking_clock):
    """Opened manager whose seeded categories are already synced."""
    manager = RepositoryManager(create_backend(request.param, tmp_path))
    manager.open()
    for record in manager.backend.all(CATEGORIES):
        manager.backend.update(
            CATEGORIES,
            record["id"],
            {"dirty": False, "externalId": f"cat-{record['id']}"},
        )
    yield manager
    manager.close()


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def session():
    return TokenSession("secret-token")


@pytest.fixture
def connectivity():
    return ConnectivityState(online=True)


@pytest.fixture
def engine(manager, api, session, connectivity):
    return SyncEngine(manager, api, session, connectivity, interval=3600)
