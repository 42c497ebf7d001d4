"""Pytest configuration and fixtures."""

import itertools
import os

import pytest

from chowder.core import clock


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path):
    """Isolate environment variables for each test.

    Configuration and data lookups are pointed at a per-test directory so a
    developer's own chowder setup never leaks into the tests.
    """
    original_env = os.environ.copy()

    for name in list(os.environ):
        if name.startswith("CHOWDER_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def ticking_clock(monkeypatch):
    """Make every timestamp one second later than the previous one."""
    ticks = itertools.count(1_700_000_000_000, 1000)
    monkeypatch.setattr(clock, "now_ms", lambda: next(ticks))
    return ticks


@pytest.fixture
def sequential_ids(monkeypatch):
    """Mint predictable ids: id-0001, id-0002, ..."""
    counter = itertools.count(1)
    monkeypatch.setattr(clock, "new_id", lambda: f"id-{next(counter):04d}")
    return counter
