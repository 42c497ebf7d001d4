"""Minimal authentication session consumed by the sync layer."""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Session(Protocol):
    """What the sync engine and API client need from authentication."""

    def is_authenticated(self) -> bool: ...

    def get_token(self) -> str | None: ...

    def sign_out(self) -> None: ...


class TokenSession:
    """Session backed by a single bearer token held in memory."""

    def __init__(self, token: str | None = None):
        self._token = token or None

    def is_authenticated(self) -> bool:
        return self._token is not None

    def get_token(self) -> str | None:
        return self._token

    def sign_in(self, token: str) -> None:
        """Adopt a new bearer token."""
        self._token = token or None

    def sign_out(self) -> None:
        """Forget the token; later requests go out unauthenticated."""
        if self._token is not None:
            logger.info("Signed out")
        self._token = None
