"""Background reconciliation of local changes with the remote authority.

- **SyncEngine**: scans dirty records and pushes them, one pass at a time
- **ApiClient**: JSON over HTTP with retries and offline detection
- **TokenSession**: bearer-token session
- **ConnectivityState**: online/offline state with transition listeners
"""

from chowder.sync.api import ApiClient
from chowder.sync.connectivity import ConnectivityState
from chowder.sync.engine import RESOURCES, RemoteResource, SyncEngine, SyncReport
from chowder.sync.session import Session, TokenSession

__all__ = [
    "ApiClient",
    "ConnectivityState",
    "RESOURCES",
    "RemoteResource",
    "Session",
    "SyncEngine",
    "SyncReport",
    "TokenSession",
]
