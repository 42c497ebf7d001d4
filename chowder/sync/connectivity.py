"""Online/offline state with transition listeners."""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityState:
    """Tracks whether the device can reach the network.

    Listeners are called with the new state on every transition, never when
    the state is set to the value it already has.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Record the current state and notify listeners on change."""
        with self._lock:
            if online == self._online:
                return
            self._online = online
            listeners = list(self._listeners)

        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        for listener in listeners:
            listener(online)

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
