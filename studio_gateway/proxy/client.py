"""
Backend Request Helper
======================

Single entry point for outbound calls to the tenant backend and the auth
provider. Every call returns a ``BackendResponse`` instead of raising for
HTTP error statuses; only transport failures raise.

Also holds the small helpers every proxy route shares: outbound header
construction, organization query scoping, collection normalization and
transport-error mapping.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import httpx
from fastapi import HTTPException, Request, status

from ..config import Settings
from ..exceptions import BackendTimeoutError, BackendTransportError, BackendUnreachableError, BadRequestError

logger = logging.getLogger(__name__)


# ============================================================================
# Response Envelope
# ============================================================================

@dataclass
class BackendResponse:
    """
    Uniform result of one outbound call.

    ``data`` is set only for 2xx responses, ``error`` only for the others.
    ``error_body`` keeps the parsed backend error body so write routes can
    relay it unchanged.
    """

    status: int
    status_text: str
    data: Any = None
    error: Optional[str] = None
    error_body: Optional[Any] = None
    content_type: str = ""
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_json(self) -> bool:
        return "application/json" in self.content_type.lower()


# ============================================================================
# Dependencies
# ============================================================================

def get_backend_client(request: Request) -> httpx.AsyncClient:
    """
    Dependency to get the shared outbound HTTP client from app state.

    Raises:
        HTTPException: If the client was not created by the lifespan hook
    """
    app_state = getattr(request.app.state, "app_state", None)
    client = getattr(app_state, "backend_client", None) if app_state else None
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Backend client not available",
        )
    return client


async def read_json_object(request: Request) -> Dict[str, Any]:
    """
    Parse the inbound body as a JSON object.

    Called from handler bodies, after the session dependency has run.

    Raises:
        BadRequestError: If the body is not valid JSON or not an object
    """
    try:
        body = await request.json()
    except ValueError:
        logger.warning("Rejected malformed JSON body", extra={"path": request.url.path})
        raise BadRequestError("Invalid request body")

    if not isinstance(body, dict):
        logger.warning("Rejected non-object JSON body", extra={"path": request.url.path})
        raise BadRequestError("Invalid request body")
    return body


# ============================================================================
# Outbound Request
# ============================================================================

async def request_backend(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    headers: Optional[Mapping[str, str]] = None,
    json: Any = None,
    params: Optional[Union[Mapping[str, str], List[tuple]]] = None,
    timeout: Optional[float] = None,
) -> BackendResponse:
    """
    Perform one outbound call and normalize the result.

    Args:
        client: Shared HTTP client
        url: Absolute URL to call
        method: HTTP method
        headers: Extra headers; they override the JSON content type default
        json: JSON-serializable request body
        params: Query parameters
        timeout: Per-call timeout in seconds (client default when None)

    Returns:
        BackendResponse for every HTTP status, including 4xx and 5xx.

    Raises:
        BackendTimeoutError: If the call was aborted by its timeout
        BackendUnreachableError: On DNS, connection or TLS failures
    """
    request_headers = {"Content-Type": "application/json"}
    if headers:
        request_headers.update(headers)

    request_kwargs: Dict[str, Any] = {"headers": request_headers}
    if json is not None:
        request_kwargs["json"] = json
    if params:
        request_kwargs["params"] = params
    if timeout is not None:
        request_kwargs["timeout"] = timeout

    try:
        response = await client.request(method, url, **request_kwargs)
    except httpx.TimeoutException as e:
        logger.error(f"Timeout calling backend {url}", extra={"method": method})
        raise BackendTimeoutError(url, str(e) or "timed out") from e
    except httpx.TransportError as e:
        logger.error(
            f"Network error calling backend {url}: {e}",
            extra={"method": method, "exception_type": type(e).__name__},
        )
        raise BackendUnreachableError(url, str(e) or type(e).__name__) from e

    return parse_backend_response(response, url)


def parse_backend_response(response: httpx.Response, url: str = "") -> BackendResponse:
    """
    Build a BackendResponse from an httpx response.

    JSON bodies become ``data`` (2xx) or ``error_body`` (other statuses).
    A non-JSON body on an error status is kept as ``{"error": text}``; on a
    success status it is ignored.
    """
    text = response.text
    result = BackendResponse(
        status=response.status_code,
        status_text=response.reason_phrase,
        content_type=response.headers.get("content-type", ""),
        text=text,
    )

    parsed: Any = None
    has_json = False
    if text:
        try:
            parsed = response.json()
            has_json = True
        except ValueError:
            has_json = False

    if result.ok:
        if has_json:
            result.data = parsed
        return result

    if has_json:
        result.error_body = parsed
    elif text:
        result.error_body = {"error": text}

    backend_error = None
    if isinstance(result.error_body, dict):
        backend_error = result.error_body.get("error")
    result.error = backend_error or result.status_text or "Request failed"

    logger.error(
        f"Error calling backend {url}",
        extra={
            "status_code": result.status,
            "status_text": result.status_text,
            "error_message": result.error,
            "body_preview": text[:200],
        },
    )
    return result


# ============================================================================
# Header / Query Helpers
# ============================================================================

def build_backend_headers(
    settings: Settings,
    access_token: Optional[str] = None,
    include_organization: bool = True,
    include_api_key: bool = False,
) -> Dict[str, str]:
    """
    Build headers for a tenant backend request.

    Args:
        settings: Application settings
        access_token: Caller's session token, forwarded as a bearer token
        include_organization: Add X-Organization-Id when configured
        include_api_key: Add X-API-Key when configured

    Returns:
        Headers dict for the backend request
    """
    headers = {"Content-Type": "application/json"}

    if include_api_key and settings.MAIN_BACKEND_API_KEY:
        headers["X-API-Key"] = settings.MAIN_BACKEND_API_KEY

    if include_organization and settings.ORGANIZATION_ID:
        headers["X-Organization-Id"] = settings.ORGANIZATION_ID

    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"

    return headers


def with_organization_param(
    settings: Settings,
    params: Optional[Iterable] = None,
) -> List[tuple]:
    """
    Return query parameters with ``organizationId`` appended when configured.

    Accepts any iterable of (key, value) pairs so repeated inbound query
    keys are preserved in order. An explicit ``organizationId`` from the
    caller is never overridden.
    """
    pairs = list(params or [])
    has_organization = any(key == "organizationId" for key, _ in pairs)
    if settings.ORGANIZATION_ID and not has_organization:
        pairs.append(("organizationId", settings.ORGANIZATION_ID))
    return pairs


# ============================================================================
# Response Normalization
# ============================================================================

def normalize_collection(payload: Any, keys: Iterable[str] = ("sessions", "data")) -> Optional[List[Any]]:
    """
    Unify the collection shapes the backend returns.

    A bare array is returned as-is; an object is searched for the first of
    ``keys`` holding an array. Anything else yields None so the caller can
    decide between an empty list and a passthrough.

    Example:
        >>> normalize_collection({"sessions": [1, 2]})
        [1, 2]
        >>> normalize_collection({"data": [1, 2]})
        [1, 2]
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return None


def error_body_or_default(result: BackendResponse) -> Any:
    """Backend error body for passthrough, or ``{"error": <message>}``."""
    if result.error_body is not None:
        return result.error_body
    return {"error": result.error or "Request failed"}


def describe_transport_error(exc: BackendTransportError) -> str:
    """Short log label for a transport failure."""
    if isinstance(exc, BackendTimeoutError):
        return "timeout"
    reason = exc.reason.lower()
    if "ssl" in reason or "certificate" in reason or "wrong version" in reason:
        return "ssl"
    if "refused" in reason:
        return "connection_refused"
    return "network"
