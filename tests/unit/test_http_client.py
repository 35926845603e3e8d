"""
Unit tests for the backend HTTP client

Tests URL building, bearer authentication, JSON decoding and error mapping
with a mocked aiohttp session.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import aiohttp
import pytest

from src.core.http_client import ApiClient, HTTPRequestError


class AsyncContextManagerMock:
    """Helper class to mock async context managers"""

    def __init__(self, return_value=None, side_effect=None):
        self.return_value = return_value
        self.side_effect = side_effect
        self.call_count = 0

    async def __aenter__(self):
        self.call_count += 1
        if self.side_effect:
            raise self.side_effect
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


def make_response(status=200, body=""):
    response = MagicMock()
    response.status = status
    response.reason = "Error" if status >= 400 else "OK"
    response.text = AsyncMock(return_value=body)
    response.request_info = Mock()
    response.history = ()
    response.headers = {}
    return response


def make_client(response=None, side_effect=None, **kwargs):
    client = ApiClient("http://backend.test/", **kwargs)
    mock_session = MagicMock()
    mock_session.closed = False
    mock_session.close = AsyncMock()
    mock_session.request.return_value = AsyncContextManagerMock(
        return_value=response, side_effect=side_effect
    )
    client.session = mock_session
    return client, mock_session


class TestRequests:
    """Request construction and decoding"""

    @pytest.mark.asyncio
    async def test_get_decodes_json(self):
        client, session = make_client(make_response(200, '{"id": "a1", "status": "ACTIVE"}'))

        data = await client.get("/api/sos/active")

        assert data == {"id": "a1", "status": "ACTIVE"}
        args, kwargs = session.request.call_args
        assert args == ("GET", "http://backend.test/api/sos/active")
        assert kwargs["json"] is None

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self):
        client, session = make_client(make_response(200, '{}'))

        await client.post("api/sos/cancel", data={"sosId": "a1", "reason": "user safe"})

        args, kwargs = session.request.call_args
        assert args == ("POST", "http://backend.test/api/sos/cancel")
        assert kwargs["json"] == {"sosId": "a1", "reason": "user safe"}

    @pytest.mark.asyncio
    async def test_empty_and_null_bodies(self):
        client, _ = make_client(make_response(200, "  "))
        assert await client.get("/api/sos/active") is None

        client, _ = make_client(make_response(200, "null"))
        assert await client.get("/api/sos/active") is None

    @pytest.mark.asyncio
    async def test_bearer_token_is_sent(self):
        client, session = make_client(make_response(200, "{}"), token_provider=lambda: "tok-1")

        await client.get("/api/me")

        assert session.request.call_args.kwargs["headers"] == {"Authorization": "Bearer tok-1"}

    @pytest.mark.asyncio
    async def test_no_token_no_header(self):
        client, session = make_client(make_response(200, "{}"), token_provider=lambda: None)

        await client.get("/api/me")

        assert session.request.call_args.kwargs["headers"] == {}

    @pytest.mark.asyncio
    async def test_timeout_is_bounded(self):
        client, session = make_client(make_response(200, "{}"), timeout=7)

        await client.get("/api/me")

        assert session.request.call_args.kwargs["timeout"].total == 7

    def test_absolute_urls_are_left_alone(self):
        client = ApiClient("http://backend.test")
        assert client._build_url("https://other.test/x") == "https://other.test/x"
        assert client._build_url("/api/me") == "http://backend.test/api/me"

    @pytest.mark.asyncio
    async def test_unsupported_method(self):
        client, _ = make_client(make_response())

        with pytest.raises(HTTPRequestError):
            await client._make_request("DELETE", "/api/sos")


class TestErrors:
    """Error mapping and retry policy"""

    @pytest.mark.asyncio
    async def test_client_error_carries_status(self):
        client, session = make_client(make_response(404, "not found"), max_retries=3)

        with pytest.raises(HTTPRequestError) as exc_info:
            await client.get("/api/sos/active")

        assert exc_info.value.status == 404
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_not_retried_by_default(self):
        client, session = make_client(make_response(503, "unavailable"))

        with pytest.raises(HTTPRequestError) as exc_info:
            await client.post("/api/sos")

        assert exc_info.value.status == 503
        assert "503" in str(exc_info.value)
        assert session.request.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_retried_when_enabled(self):
        client, session = make_client(make_response(500, "boom"), max_retries=2)

        with patch("src.core.http_client.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(HTTPRequestError):
                await client.get("/api/sos/active")

        assert session.request.call_count == 3

    @pytest.mark.asyncio
    async def test_connection_error(self):
        client, _ = make_client(side_effect=aiohttp.ClientConnectionError("Connection refused"))

        with pytest.raises(HTTPRequestError) as exc_info:
            await client.get("/api/me")

        assert "connection" in str(exc_info.value).lower()
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_timeout_error(self):
        client, _ = make_client(side_effect=asyncio.TimeoutError())

        with pytest.raises(HTTPRequestError) as exc_info:
            await client.post("/api/locations/heartbeat", data={"lat": 1, "lng": 2})

        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client, _ = make_client(make_response(200, "<html>"))

        with pytest.raises(HTTPRequestError) as exc_info:
            await client.get("/api/me")

        assert "Invalid JSON" in str(exc_info.value)


class TestSessionLifecycle:

    @pytest.mark.asyncio
    async def test_close_releases_session(self):
        client, session = make_client(make_response())

        await client.close()

        session.close.assert_awaited_once()
        assert client.session is None

    @pytest.mark.asyncio
    async def test_context_manager_creates_and_closes_session(self):
        async with ApiClient("http://backend.test") as client:
            assert client.session is not None
            assert not client.session.closed
        assert client.session is None
