"""Time and identifier helpers shared by the storage and sync layers."""

import time
import uuid


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    """Mint an opaque, globally-unique record ID."""
    return uuid.uuid4().hex
