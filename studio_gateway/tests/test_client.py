"""
Unit Tests for the Backend Request Helper
=========================================

Tests for studio_gateway/proxy/client.py

Test Coverage:
--------------
1. Envelope building for JSON, non-JSON and empty bodies
2. Error message selection
3. Transport failure mapping (timeout vs. unreachable)
4. Header construction and organization scoping
5. Collection normalization

Run tests:
----------
    pytest studio_gateway/tests/test_client.py -v
"""

import httpx
import pytest

from studio_gateway.exceptions import BackendTimeoutError, BackendUnreachableError
from studio_gateway.proxy.client import (
    BackendResponse,
    build_backend_headers,
    describe_transport_error,
    error_body_or_default,
    normalize_collection,
    parse_backend_response,
    request_backend,
    with_organization_param,
)

URL = "http://tenant-be:3001/api/packages"


def make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ============================================================================
# request_backend Tests
# ============================================================================

class TestRequestBackend:
    """Outbound call normalization"""

    @pytest.mark.asyncio
    async def test_success_json(self):
        client = make_client(lambda request: httpx.Response(200, json=[{"id": "p1"}]))

        result = await request_backend(client, URL)

        assert result.ok
        assert result.status == 200
        assert result.data == [{"id": "p1"}]
        assert result.error is None
        assert result.is_json

    @pytest.mark.asyncio
    async def test_error_json_uses_backend_error_field(self):
        client = make_client(
            lambda request: httpx.Response(409, json={"error": "Seat already taken", "seat": 4})
        )

        result = await request_backend(client, URL, method="POST", json={"seat": 4})

        assert not result.ok
        assert result.data is None
        assert result.error == "Seat already taken"
        assert result.error_body == {"error": "Seat already taken", "seat": 4}

    @pytest.mark.asyncio
    async def test_error_json_without_error_field_uses_status_text(self):
        client = make_client(lambda request: httpx.Response(403, json={"message": "nope"}))

        result = await request_backend(client, URL)

        assert result.error == "Forbidden"
        assert result.error_body == {"message": "nope"}

    @pytest.mark.asyncio
    async def test_error_text_body_is_wrapped(self):
        client = make_client(lambda request: httpx.Response(500, text="upstream exploded"))

        result = await request_backend(client, URL)

        assert result.error == "upstream exploded"
        assert result.error_body == {"error": "upstream exploded"}

    @pytest.mark.asyncio
    async def test_success_non_json_body_is_ignored(self):
        client = make_client(lambda request: httpx.Response(200, text="<html></html>"))

        result = await request_backend(client, URL)

        assert result.ok
        assert result.data is None
        assert not result.is_json
        assert result.text == "<html></html>"

    @pytest.mark.asyncio
    async def test_empty_error_body(self):
        client = make_client(lambda request: httpx.Response(502))

        result = await request_backend(client, URL)

        assert result.error_body is None
        assert result.error == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_default_content_type_and_override(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        client = make_client(handler)

        await request_backend(client, URL)
        await request_backend(client, URL, headers={"Content-Type": "text/plain", "X-Extra": "1"})

        assert seen[0].headers["Content-Type"] == "application/json"
        assert seen[1].headers["Content-Type"] == "text/plain"
        assert seen[1].headers["X-Extra"] == "1"

    @pytest.mark.asyncio
    async def test_timeout_raises_backend_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(BackendTimeoutError) as exc_info:
            await request_backend(make_client(handler), URL, timeout=10)

        assert exc_info.value.status_code == 408
        assert exc_info.value.url == URL
        assert describe_transport_error(exc_info.value) == "timeout"

    @pytest.mark.asyncio
    async def test_connection_refused_raises_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        with pytest.raises(BackendUnreachableError) as exc_info:
            await request_backend(make_client(handler), URL)

        assert exc_info.value.status_code == 503
        assert exc_info.value.message == "Network error: [Errno 111] Connection refused"
        assert describe_transport_error(exc_info.value) == "connection_refused"


def test_parse_backend_response_without_request_url():
    response = httpx.Response(404, json={"error": "Not found"})

    result = parse_backend_response(response)

    assert result.status == 404
    assert result.error == "Not found"


# ============================================================================
# Helper Tests
# ============================================================================

def test_build_backend_headers_full(test_settings):
    settings = test_settings.model_copy(update={"MAIN_BACKEND_API_KEY": "server-key"})

    headers = build_backend_headers(settings, "tok", include_api_key=True)

    assert headers == {
        "Content-Type": "application/json",
        "X-API-Key": "server-key",
        "X-Organization-Id": "org-123",
        "Authorization": "Bearer tok",
    }


def test_build_backend_headers_minimal(test_settings):
    settings = test_settings.model_copy(update={"ORGANIZATION_ID": None})

    headers = build_backend_headers(settings, include_api_key=True)

    assert headers == {"Content-Type": "application/json"}


def test_with_organization_param_appends_once(test_settings):
    assert with_organization_param(test_settings) == [("organizationId", "org-123")]
    assert with_organization_param(test_settings, [("tag", "a"), ("tag", "b")]) == [
        ("tag", "a"),
        ("tag", "b"),
        ("organizationId", "org-123"),
    ]
    assert with_organization_param(test_settings, [("organizationId", "other")]) == [
        ("organizationId", "other"),
    ]


def test_with_organization_param_unconfigured(test_settings):
    settings = test_settings.model_copy(update={"ORGANIZATION_ID": None})

    assert with_organization_param(settings, [("a", "1")]) == [("a", "1")]


@pytest.mark.parametrize(
    "payload,expected",
    [
        ([1, 2], [1, 2]),
        ({"sessions": [1, 2]}, [1, 2]),
        ({"data": [1, 2]}, [1, 2]),
        ({"sessions": None, "data": [3]}, [3]),
        ({"items": [1]}, None),
        ("text", None),
        (None, None),
    ],
)
def test_normalize_collection(payload, expected):
    assert normalize_collection(payload) == expected


def test_error_body_or_default():
    relayed = BackendResponse(status=400, status_text="Bad Request", error="x", error_body={"error": "x", "code": 1})
    empty = BackendResponse(status=500, status_text="", error=None)

    assert error_body_or_default(relayed) == {"error": "x", "code": 1}
    assert error_body_or_default(empty) == {"error": "Request failed"}


def test_describe_transport_error_ssl():
    exc = BackendUnreachableError(URL, "[SSL: WRONG_VERSION_NUMBER] wrong version number")

    assert describe_transport_error(exc) == "ssl"
    assert describe_transport_error(BackendUnreachableError(URL, "Name or service not known")) == "network"
