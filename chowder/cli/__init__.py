"""Chowder CLI.

Command-line interface over the local store and the sync engine, built
with Click and Rich.
"""

from chowder.cli.main import cli

__all__ = ["cli"]
