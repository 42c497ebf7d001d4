"""Pytest configuration and fixtures for CLI tests."""

import pytest
from click.testing import CliRunner

from chowder.cli.main import cli


@pytest.fixture
def runner():
    """CLI test runner."""
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "store"


@pytest.fixture
def invoke(runner, data_dir):
    """Run the CLI against a per-test data directory."""

    def run(*args, input=None, **kwargs):
        return runner.invoke(
            cli,
            ["--no-color", "--data-dir", str(data_dir), *args],
            input=input,
            **kwargs,
        )

    return run
