"""
Unit tests for the Python SDK client.

The server is replaced by an httpx.MockTransport so these tests cover the
client's request shapes and envelope handling only.

Tests cover:
- Envelope unwrapping
- Error mapping (401, 404, 400, 5xx, transport failures)
- Pairing code handling
- Path segment encoding
"""

import json

import httpx
import pytest

from sdk.adba_sdk import (
    AdbaClient,
    ConnectionError,
    NotFoundError,
    PairingError,
    RequestError,
    ServerError,
)

DB = {
    "id": "1234",
    "name": "orders",
    "client_app": "shop",
    "created_at": 1_700_000_000_000,
    "size_bytes": 0,
    "tables_count": 0,
    "status": "Active",
}


def envelope(data=None, error=None):
    if error is not None:
        return {"success": False, "error": error}
    return {"success": True, "data": data}


class Recorder:
    """Records requests and answers from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes[(request.method, request.url.path)]
        return httpx.Response(status, json=body)

    def last_body(self):
        return json.loads(self.requests[-1].content)


def make_client(routes, **kwargs):
    recorder = Recorder(routes)
    client = AdbaClient(
        "http://adba.test:8080/",
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )
    return client, recorder


class TestAdbaClient:
    """Tests for AdbaClient."""

    @pytest.mark.asyncio
    async def test_list_databases(self):
        """List unwraps the envelope into DatabaseInfo."""
        client, _ = make_client({("GET", "/api/databases"): (200, envelope([DB]))})
        async with client:
            databases = await client.list_databases()

        assert len(databases) == 1
        assert databases[0].name == "orders"
        assert databases[0].status == "Active"

    @pytest.mark.asyncio
    async def test_create_sends_client_app(self):
        """create_database defaults client_app to the client's label."""
        client, recorder = make_client(
            {("POST", "/api/databases"): (201, envelope(DB))},
            client_app="shop",
        )
        async with client:
            info = await client.create_database("orders")

        assert info.id == "1234"
        assert recorder.last_body() == {"name": "orders", "client_app": "shop"}

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self):
        """A 404 from get becomes None."""
        client, _ = make_client(
            {("GET", "/api/databases/nope"): (404, envelope(error="Database not found"))}
        )
        async with client:
            assert await client.get_database("nope") is None

    @pytest.mark.asyncio
    async def test_query_sends_pairing_code(self):
        """query includes the configured pairing code."""
        client, recorder = make_client(
            {("POST", "/api/query"): (200, envelope([{"1": 1}]))},
            pairing_code="A1B2C3",
        )
        async with client:
            rows = await client.query("orders", "SELECT 1")

        assert rows == [{"1": 1}]
        assert recorder.last_body() == {
            "database": "orders",
            "query": "SELECT 1",
            "pairing_code": "A1B2C3",
        }

    @pytest.mark.asyncio
    async def test_query_without_code(self):
        """Gated calls need a code before any request is sent."""
        client, recorder = make_client({})
        async with client:
            with pytest.raises(PairingError):
                await client.query("orders", "SELECT 1")
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_query_rejected_code(self):
        """401 maps to PairingError."""
        client, _ = make_client(
            {("POST", "/api/query"): (401, envelope(error="Invalid pairing code"))},
            pairing_code="OLD000",
        )
        async with client:
            with pytest.raises(PairingError) as exc_info:
                await client.query("orders", "SELECT 1")
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_query_failed(self):
        """400 maps to RequestError with the server's message."""
        client, _ = make_client(
            {("POST", "/api/query"): (400, envelope(error="no such table: t"))},
            pairing_code="A1B2C3",
        )
        async with client:
            with pytest.raises(RequestError, match="no such table"):
                await client.query("orders", "SELECT * FROM t")

    @pytest.mark.asyncio
    async def test_server_error(self):
        """5xx maps to ServerError."""
        client, _ = make_client(
            {("GET", "/api/status"): (500, envelope(error="Catalog unavailable"))}
        )
        async with client:
            with pytest.raises(ServerError) as exc_info:
                await client.status()
        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_not_found_on_delete(self):
        """404 on other calls maps to NotFoundError."""
        client, _ = make_client(
            {("DELETE", "/api/databases/x"): (404, envelope(error="Database not found"))}
        )
        async with client:
            with pytest.raises(NotFoundError):
                await client.delete_database("x")

    @pytest.mark.asyncio
    async def test_non_envelope_response(self):
        """A body that is not an envelope is a connection problem."""

        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        client = AdbaClient("http://adba.test", transport=httpx.MockTransport(handler))
        async with client:
            with pytest.raises(ConnectionError):
                await client.status()

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        """Transport errors map to ConnectionError."""

        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = AdbaClient("http://adba.test", transport=httpx.MockTransport(handler))
        async with client:
            with pytest.raises(ConnectionError) as exc_info:
                await client.status()
        assert exc_info.value.address == "http://adba.test"

    @pytest.mark.asyncio
    async def test_pair_stores_valid_code(self):
        """A valid pair() makes the code the client's default."""
        client, _ = make_client({("POST", "/api/pair"): (200, envelope({"valid": True}))})
        async with client:
            assert await client.pair("A1B2C3") is True
        assert client.pairing_code == "A1B2C3"

    @pytest.mark.asyncio
    async def test_pair_invalid_code_not_stored(self):
        """An invalid pair() leaves the client unchanged."""
        client, _ = make_client({("POST", "/api/pair"): (200, envelope({"valid": False}))})
        async with client:
            assert await client.pair("WRONG1") is False
        assert client.pairing_code is None

    @pytest.mark.asyncio
    async def test_rotate_pairing_code(self):
        """rotate_pairing_code returns the new code."""
        client, _ = make_client(
            {("POST", "/api/pairing-code"): (200, envelope({"pairing_code": "NEW123"}))}
        )
        async with client:
            assert await client.rotate_pairing_code() == "NEW123"

    @pytest.mark.asyncio
    async def test_attach_and_detach(self):
        """attach returns a Session; detach reports removal."""
        session = {
            "id": "s-1",
            "client_app": "shop",
            "database": "orders",
            "connected_at": 1,
        }
        client, recorder = make_client(
            {
                ("POST", "/api/sessions"): (201, envelope(session)),
                ("DELETE", "/api/sessions/s-1"): (200, envelope({"removed": True})),
            },
            pairing_code="A1B2C3",
            client_app="shop",
        )
        async with client:
            attached = await client.attach("orders")
            assert recorder.last_body()["client_app"] == "shop"
            assert await client.detach(attached.id) is True

        assert attached.database == "orders"

    @pytest.mark.asyncio
    async def test_names_encoded_in_path(self):
        """Names with / or ? stay one path segment."""
        seen = []

        def handler(request):
            seen.append(request.url.raw_path)
            if request.method == "GET":
                return httpx.Response(200, json=envelope(dict(DB, name="a/b?c")))
            return httpx.Response(200, json=envelope({"deleted": "a/b?c"}))

        client = AdbaClient("http://adba.test", transport=httpx.MockTransport(handler))
        async with client:
            info = await client.get_database("a/b?c")
            await client.delete_database("a/b?c")

        assert info.name == "a/b?c"
        assert seen == [b"/api/databases/a%2Fb%3Fc", b"/api/databases/a%2Fb%3Fc"]

    @pytest.mark.asyncio
    async def test_detach_encodes_session_id(self):
        """Session ids are encoded as one path segment."""
        seen = []

        def handler(request):
            seen.append(request.url.raw_path)
            return httpx.Response(200, json=envelope({"removed": False}))

        client = AdbaClient("http://adba.test", transport=httpx.MockTransport(handler))
        async with client:
            assert await client.detach("x/y") is False

        assert seen == [b"/api/sessions/x%2Fy"]
