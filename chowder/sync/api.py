"""REST client for the remote authority.

Sends JSON with the session's bearer token. Failed requests are retried with
exponential backoff, except when retrying cannot help: the device is
offline, the request timed out, or the server rejected the session (which
also signs the session out).
"""

import asyncio
import logging
from typing import Any

import httpx

from chowder.core.errors import ApiError, AuthenticationError, OfflineError

from .connectivity import ConnectivityState
from .session import Session

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_RETRIES = 3


def _error_message(body: Any, status_code: int) -> str:
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if message:
            return str(message)
    return f"Request failed with status {status_code}"


class ApiClient:
    """Async JSON client with retries, built on ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        session: Session,
        connectivity: ConnectivityState | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session = session
        self.connectivity = connectivity
        self.retries = max(1, retries)
        self.backoff = backoff
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def get(self, endpoint: str) -> Any:
        return await self.request("GET", endpoint)

    async def post(self, endpoint: str, data: Any = None) -> Any:
        return await self.request("POST", endpoint, data)

    async def put(self, endpoint: str, data: Any = None) -> Any:
        return await self.request("PUT", endpoint, data)

    async def patch(self, endpoint: str, data: Any = None) -> Any:
        return await self.request("PATCH", endpoint, data)

    async def delete(self, endpoint: str) -> Any:
        return await self.request("DELETE", endpoint)

    async def request(self, method: str, endpoint: str, data: Any = None) -> Any:
        """Send a request and return the decoded response body.

        Raises:
            OfflineError: The device is offline.
            AuthenticationError: The server answered 401.
            ApiError: Any other failure once retries are exhausted.
        """
        headers = {}
        token = self.session.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        body = data if method in ("POST", "PUT", "PATCH") else None

        for attempt in range(self.retries):
            if self.connectivity is not None and not self.connectivity.is_online():
                raise OfflineError()

            try:
                response = await self._client.request(
                    method, endpoint, json=body, headers=headers
                )
            except httpx.TimeoutException as e:
                raise ApiError(f"Request timed out: {method} {endpoint}") from e
            except httpx.TransportError as e:
                error = ApiError(f"Request failed: {e}")
            else:
                payload = self._decode(response)
                if response.is_success:
                    return payload
                if response.status_code == 401:
                    self.session.sign_out()
                    raise AuthenticationError(
                        "Authentication failed. Please sign in again.", 401
                    )
                error = ApiError(
                    _error_message(payload, response.status_code),
                    response.status_code,
                )

            if attempt == self.retries - 1:
                raise error

            delay = self.backoff * (2**attempt)
            logger.debug(
                f"{method} {endpoint} failed ({error}); retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

        raise ApiError("Request failed after retries")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _decode(self, response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text
