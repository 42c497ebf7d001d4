"""Tests for the REST client, against an in-process httpx transport."""

import json

import httpx
import pytest

from chowder.core.errors import ApiError, AuthenticationError, OfflineError
from chowder.sync.api import ApiClient
from chowder.sync.connectivity import ConnectivityState
from chowder.sync.session import TokenSession

BASE_URL = "https://api.example.com/"


class Server:
    """Scripted responses; each request consumes the next one."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def make_client(server, session=None, connectivity=None, retries=3):
    return ApiClient(
        BASE_URL,
        session or TokenSession("secret-token"),
        connectivity,
        retries=retries,
        backoff=0,
        transport=httpx.MockTransport(server),
    )


class TestRequests:
    """Test successful requests."""

    @pytest.mark.asyncio
    async def test_post_sends_json_with_bearer_token(self):
        server = Server(httpx.Response(201, json={"id": "remote-1"}))

        async with make_client(server) as client:
            result = await client.post("/api/places", {"name": "Golden Dragon"})

        assert result == {"id": "remote-1"}
        request = server.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/places"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert json.loads(request.content) == {"name": "Golden Dragon"}

    @pytest.mark.asyncio
    async def test_no_token_no_authorization_header(self):
        server = Server(httpx.Response(200, json=[]))

        async with make_client(server, session=TokenSession()) as client:
            await client.get("/api/places")

        assert "Authorization" not in server.requests[0].headers

    @pytest.mark.asyncio
    async def test_get_sends_no_body(self):
        server = Server(httpx.Response(200, json={"ok": True}))

        async with make_client(server) as client:
            await client.get("/api/places")

        assert server.requests[0].content == b""

    @pytest.mark.asyncio
    async def test_text_response(self):
        server = Server(httpx.Response(200, text="pong"))

        async with make_client(server) as client:
            assert await client.delete("/api/tags/t1") == "pong"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["put", "patch"])
    async def test_write_methods(self, method):
        server = Server(httpx.Response(200, json={"id": "x"}))

        async with make_client(server) as client:
            await getattr(client, method)("/api/tags/x", {"name": "Hot"})

        assert server.requests[0].method == method.upper()
        assert json.loads(server.requests[0].content) == {"name": "Hot"}


class TestRetries:
    """Test which failures are retried."""

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self):
        server = Server(
            httpx.Response(503),
            httpx.Response(200, json={"id": "remote-1"}),
        )

        async with make_client(server) as client:
            result = await client.post("/api/tags", {"name": "Spicy"})

        assert result == {"id": "remote-1"}
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self):
        server = Server(httpx.Response(500, json={"message": "Database is down"}))

        async with make_client(server, retries=3) as client:
            with pytest.raises(ApiError) as exc_info:
                await client.post("/api/tags", {"name": "Spicy"})

        assert exc_info.value.status_code == 500
        assert str(exc_info.value) == "Database is down"
        assert len(server.requests) == 3

    @pytest.mark.asyncio
    async def test_default_error_message(self):
        server = Server(httpx.Response(404, text="nope"))

        async with make_client(server, retries=1) as client:
            with pytest.raises(ApiError, match="Request failed with status 404"):
                await client.get("/api/places/p1")

    @pytest.mark.asyncio
    async def test_connection_error_is_retried(self):
        server = Server(
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json={"id": "remote-1"}),
        )

        async with make_client(server) as client:
            assert await client.post("/api/tags", {}) == {"id": "remote-1"}

        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self):
        server = Server(httpx.ReadTimeout("too slow"))

        async with make_client(server) as client:
            with pytest.raises(ApiError, match="timed out"):
                await client.get("/api/places")

        assert len(server.requests) == 1


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_unauthorized_signs_out(self):
        session = TokenSession("expired")
        server = Server(httpx.Response(401, json={"error": "expired"}))

        async with make_client(server, session=session) as client:
            with pytest.raises(AuthenticationError) as exc_info:
                await client.post("/api/places", {})

        assert exc_info.value.status_code == 401
        assert not session.is_authenticated()
        assert len(server.requests) == 1


class TestConnectivity:
    @pytest.mark.asyncio
    async def test_offline_sends_nothing(self):
        server = Server(httpx.Response(200, json={}))
        connectivity = ConnectivityState(online=False)

        async with make_client(server, connectivity=connectivity) as client:
            with pytest.raises(OfflineError):
                await client.get("/api/places")

        assert server.requests == []

    def test_listeners_fire_on_transitions_only(self):
        connectivity = ConnectivityState()
        seen = []
        connectivity.add_listener(seen.append)

        connectivity.set_online(True)
        connectivity.set_online(False)
        connectivity.set_online(False)
        connectivity.set_online(True)
        connectivity.remove_listener(seen.append)
        connectivity.set_online(False)

        assert seen == [False, True]


class TestTokenSession:
    def test_sign_in_and_out(self):
        session = TokenSession()
        assert not session.is_authenticated()

        session.sign_in("token")
        assert session.get_token() == "token"

        session.sign_out()
        assert session.get_token() is None

    def test_empty_token_is_no_token(self):
        assert not TokenSession("").is_authenticated()
