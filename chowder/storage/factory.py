"""Backend selection, made once at startup."""

import logging
import os
from pathlib import Path

from .backends import ObjectStoreBackend, SQLiteBackend, StorageBackend

logger = logging.getLogger(__name__)

NATIVE = "native"
WEB = "web"
RUNTIMES = (NATIVE, WEB)

SQLITE_FILENAME = "chowder.db"
OBJECTSTORE_FILENAME = "chowder_store.json"


def detect_runtime() -> str:
    """Runtime environment from ``CHOWDER_RUNTIME``, defaulting to native."""
    runtime = os.environ.get("CHOWDER_RUNTIME", NATIVE).strip().lower()
    if runtime not in RUNTIMES:
        raise ValueError(
            f"Unknown runtime {runtime!r}; expected one of {', '.join(RUNTIMES)}"
        )
    return runtime


def create_backend(runtime: str | None, data_dir: Path | None) -> StorageBackend:
    """Build the backend for a runtime.

    ``native`` gets the relational backend and ``web`` the object store.
    Without a data directory both keep their state in memory.
    """
    runtime = runtime or detect_runtime()

    if runtime == NATIVE:
        path = Path(data_dir) / SQLITE_FILENAME if data_dir else ":memory:"
        backend: StorageBackend = SQLiteBackend(path)
    elif runtime == WEB:
        path = Path(data_dir) / OBJECTSTORE_FILENAME if data_dir else None
        backend = ObjectStoreBackend(path)
    else:
        raise ValueError(
            f"Unknown runtime {runtime!r}; expected one of {', '.join(RUNTIMES)}"
        )

    logger.debug(f"Selected {backend.name} backend for {runtime} runtime")
    return backend
