"""Local-first place, visit and dish tracker with background sync."""

__version__ = "0.1.0"
