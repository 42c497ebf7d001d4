"""CLI commands module."""

from . import backup, categories, sync

__all__ = ["backup", "categories", "sync"]
