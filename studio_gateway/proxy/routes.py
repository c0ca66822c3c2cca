"""
Proxy Routes - Tenant Backend Forwarding
========================================

This module implements the endpoints that forward booking front-end requests
to the tenant backend service.

Access Model:
-------------
1. Public routes accept an optional session; its token is forwarded when present
2. Protected routes reject requests without a valid session (401)
3. X-Organization-Id header and organizationId query param scope every call
   to the configured tenant

Failure Model:
--------------
- Read routes that return collections degrade backend failures to 200 []
- Write routes relay the backend's status and error body
- Connection failures on write/detail routes map to 503

Endpoints:
----------
- GET  /api/sessions, /api/sessions/{id}
- GET  /api/packages
- POST /api/packages/redeem, /api/members/{id}/packages/redeem
- GET  /api/members/{id}/redemptions, /api/redemptions/{id}/all-access-usage
- GET  /api/coupons/code/{code}
- GET  /api/instructors
- GET  /api/bookings, POST /api/bookings
- GET  /api/seat-layouts, /api/seat-layouts/{id}/seats
- POST /api/contact
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from fastapi import APIRouter, Body, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from ..auth.session import SessionContext, get_optional_session, require_session
from ..config import Settings, get_settings
from ..exceptions import (
    BackendTimeoutError,
    BackendTransportError,
    BadRequestError,
    GatewayError,
    UpstreamError,
)
from ..models import Instructor
from .client import (
    BackendResponse,
    build_backend_headers,
    describe_transport_error,
    error_body_or_default,
    get_backend_client,
    normalize_collection,
    read_json_object,
    request_backend,
    with_organization_param,
)

logger = logging.getLogger(__name__)

# Create router
proxy_router = APIRouter(prefix="/api", tags=["Tenant Backend Proxy"])


# ============================================================================
# Helpers
# ============================================================================

def _token(session: Optional[SessionContext]) -> Optional[str]:
    return session.access_token if session else None


def _service_unavailable(exc: BackendTransportError, service: str) -> GatewayError:
    logger.error(
        f"Cannot reach {service}: {exc.reason}",
        extra={"url": exc.url, "failure": describe_transport_error(exc)},
    )
    return GatewayError(
        f"Cannot connect to {service}. Please try again later.",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


def _created(result: BackendResponse) -> JSONResponse:
    """201 with the backend JSON; a non-JSON success body becomes a message."""
    if result.data is not None:
        content = result.data
    elif result.text:
        content = {"message": result.text}
    else:
        content = {}
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=content)


def _list_or_empty(result: BackendResponse, label: str) -> List[Any]:
    """Array passthrough for read routes; anything else degrades to []."""
    if result.ok and isinstance(result.data, list):
        return result.data
    if not result.ok:
        logger.error(
            f"Error fetching {label}",
            extra={"status_code": result.status, "body_preview": result.text[:200]},
        )
    return []


# ============================================================================
# Sessions (classes)
# ============================================================================

@proxy_router.get("/sessions")
async def list_sessions(
    request: Request,
    session: Optional[SessionContext] = Depends(get_optional_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """
    List class sessions.

    All inbound query parameters are forwarded unchanged. The backend may
    answer with a bare array, ``{"sessions": [...]}`` or ``{"data": [...]}``;
    all three are returned as a bare array.
    """
    url = f"{settings.tenant_backend_url}/api/sessions"
    params = with_organization_param(settings, request.query_params.multi_items())
    logger.info("Fetching sessions from backend", extra={"url": url})

    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings, _token(session)),
            params=params,
        )
    except BackendTransportError as e:
        failure = describe_transport_error(e)
        if failure not in ("connection_refused", "ssl"):
            logger.error(f"Error fetching sessions: {e.reason}", extra={"failure": failure})
            raise GatewayError()
        logger.error(
            f"Sessions unavailable, returning empty list. Is {settings.tenant_backend_url} running?",
            extra={"failure": failure},
        )
        return []

    if result.ok:
        if not result.is_json:
            logger.error(
                "Non-JSON response from sessions endpoint",
                extra={"body_preview": result.text[:200]},
            )
            raise GatewayError("Invalid response from server")
        return normalize_collection(result.data, keys=("sessions", "data")) or []

    # Sessions might not exist yet
    if result.status == status.HTTP_404_NOT_FOUND:
        return []

    raise GatewayError("Failed to fetch sessions", status_code=result.status)


@proxy_router.get("/sessions/{session_id}")
async def get_session_detail(
    session_id: str,
    session: Optional[SessionContext] = Depends(get_optional_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """Fetch one class session."""
    url = f"{settings.tenant_backend_url}/api/sessions/{quote(session_id, safe='')}"

    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings, _token(session)),
        )
    except BackendTransportError as e:
        logger.error(
            f"Connection failed when fetching session. Is {settings.tenant_backend_url} running?",
            extra={"failure": describe_transport_error(e)},
        )
        raise GatewayError(
            "Backend server is unreachable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    if result.ok:
        if not result.is_json:
            raise GatewayError("Invalid response from server")
        return result.data

    if result.status == status.HTTP_404_NOT_FOUND:
        raise GatewayError("Session not found", status_code=status.HTTP_404_NOT_FOUND)

    raise GatewayError("Failed to fetch session", status_code=result.status)


# ============================================================================
# Packages
# ============================================================================

@proxy_router.get("/packages")
async def list_packages(
    session: Optional[SessionContext] = Depends(get_optional_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """List purchasable packages. Never fails: errors degrade to []."""
    url = f"{settings.tenant_backend_url}/api/packages"
    logger.info("Fetching packages from backend", extra={"url": url})

    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings, _token(session)),
            params=with_organization_param(settings),
        )
    except BackendTransportError as e:
        logger.error(
            f"Connection failed to tenant backend at {settings.tenant_backend_url}. "
            "Please check TENANT_BE_URL environment variable.",
            extra={"failure": describe_transport_error(e)},
        )
        return []

    if result.ok and not result.is_json:
        # Usually an HTML 404 page from a wrong base URL
        logger.error(
            "Received non-JSON response from packages endpoint",
            extra={"url": url, "body_preview": result.text[:200]},
        )
        return []

    return _list_or_empty(result, "packages")


async def _redeem(
    backend_client: httpx.AsyncClient,
    urls: List[str],
    payload: Dict[str, Any],
    headers: Dict[str, str],
) -> JSONResponse:
    """
    POST ``payload`` to the first URL, falling back to the next one on 404.

    Each fallback is attempted at most once, in order.
    """
    try:
        result = await request_backend(backend_client, urls[0], method="POST", headers=headers, json=payload)
        for fallback_url in urls[1:]:
            if result.status != status.HTTP_404_NOT_FOUND:
                break
            logger.info("Redeem endpoint not found, falling back", extra={"url": fallback_url})
            result = await request_backend(backend_client, fallback_url, method="POST", headers=headers, json=payload)
    except BackendTransportError as e:
        raise _service_unavailable(e, "package service")

    if result.ok:
        return _created(result)

    raise UpstreamError(result.status, error_body_or_default(result))


@proxy_router.post("/packages/redeem", status_code=status.HTTP_201_CREATED)
async def redeem_package(
    request: Request,
    session: SessionContext = Depends(require_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """Redeem a package for the signed-in member."""
    body = await read_json_object(request)
    url = f"{settings.tenant_backend_url}/api/packages/redeem"
    headers = build_backend_headers(settings, session.access_token)
    return await _redeem(backend_client, [url], body, headers)


@proxy_router.post("/members/{member_id}/packages/redeem", status_code=status.HTTP_201_CREATED)
async def redeem_member_package(
    member_id: str,
    request: Request,
    session: SessionContext = Depends(require_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """
    Redeem a package for a specific member.

    The member-specific endpoint is tried first; a 404 triggers exactly one
    call to the general one. ``memberId`` is always present in the
    forwarded body.
    """
    body = await read_json_object(request)
    base = settings.tenant_backend_url
    payload = {**body, "memberId": member_id}
    urls = [
        f"{base}/api/members/{quote(member_id, safe='')}/packages/redeem",
        f"{base}/api/packages/redeem",
    ]
    headers = build_backend_headers(settings, session.access_token)
    return await _redeem(backend_client, urls, payload, headers)


# ============================================================================
# Redemptions
# ============================================================================

@proxy_router.get("/members/{member_id}/redemptions")
async def list_member_redemptions(
    member_id: str,
    session: SessionContext = Depends(require_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """List a member's package redemptions; failures degrade to []."""
    url = f"{settings.tenant_backend_url}/api/members/{quote(member_id, safe='')}/redemptions"
    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings, session.access_token),
        )
    except BackendTransportError as e:
        logger.error(f"Error in redemptions API: {e.reason}")
        return []

    return _list_or_empty(result, "redemptions")


@proxy_router.get("/redemptions/{redemption_id}/all-access-usage")
async def list_all_access_usage(
    redemption_id: str,
    session: SessionContext = Depends(require_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """List usage of an all-access redemption; failures degrade to []."""
    url = (
        f"{settings.tenant_backend_url}/api/redemptions/"
        f"{quote(redemption_id, safe='')}/all-access-usage"
    )
    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings, session.access_token),
        )
    except BackendTransportError as e:
        logger.error(f"Error in all access usage API: {e.reason}")
        return []

    return _list_or_empty(result, "all access usage")


# ============================================================================
# Coupons
# ============================================================================

@proxy_router.get("/coupons/code/{code}")
async def get_coupon_by_code(
    code: str,
    session: SessionContext = Depends(require_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """Look up a coupon by its code; backend errors are relayed."""
    url = f"{settings.tenant_backend_url}/api/coupons/code/{quote(code, safe='')}"
    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings, session.access_token),
        )
    except BackendTransportError as e:
        raise _service_unavailable(e, "coupon service")

    if result.ok:
        return result.data

    raise UpstreamError(result.status, error_body_or_default(result))


# ============================================================================
# Instructors
# ============================================================================

@proxy_router.get("/instructors", response_model=List[Instructor])
async def list_instructors(
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """
    List instructors mapped to team page cards.

    Called without a session token; only the organization scopes the call.
    """
    url = f"{settings.tenant_backend_url}/api/instructors"
    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings),
            params=with_organization_param(settings),
        )
    except BackendTransportError as e:
        logger.error(f"Error in instructors API: {e.reason}")
        return []

    instructors = _list_or_empty(result, "instructors")
    logger.info(f"Fetched {len(instructors)} instructors")
    return [Instructor.from_backend(raw) for raw in instructors if isinstance(raw, dict)]


# ============================================================================
# Bookings
# ============================================================================

@proxy_router.get("/bookings")
async def list_bookings(
    sessionId: Optional[str] = Query(None, description="Only bookings for this class session"),
    session: Optional[SessionContext] = Depends(get_optional_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """List bookings, optionally for one class session."""
    url = f"{settings.tenant_backend_url}/api/bookings"
    params = [("sessionId", sessionId)] if sessionId else []

    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings, _token(session)),
            params=with_organization_param(settings, params),
        )
    except BackendTransportError as e:
        logger.error(
            f"Bookings unavailable, returning empty list. Is {settings.tenant_backend_url} running?",
            extra={"failure": describe_transport_error(e)},
        )
        return []

    if result.ok:
        if not result.is_json:
            raise GatewayError("Invalid response from server")
        return result.data

    # No bookings found
    if result.status == status.HTTP_404_NOT_FOUND:
        return []

    raise GatewayError("Failed to fetch bookings", status_code=result.status)


@proxy_router.post("/bookings", status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: Request,
    session: SessionContext = Depends(require_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """
    Create a booking.

    The outbound call is aborted after BOOKING_TIMEOUT_SECONDS and answered
    with 408; this is the only route with its own timeout.
    """
    body = await read_json_object(request)
    url = f"{settings.tenant_backend_url}/api/bookings"
    logger.info("Creating booking", extra={"url": url, "session_id": body.get("sessionId")})

    try:
        result = await request_backend(
            backend_client,
            url,
            method="POST",
            headers=build_backend_headers(settings, session.access_token),
            json=body,
            timeout=settings.BOOKING_TIMEOUT_SECONDS,
        )
    except BackendTimeoutError:
        raise GatewayError(
            "Request timeout. Please try again.",
            status_code=status.HTTP_408_REQUEST_TIMEOUT,
        )
    except BackendTransportError as e:
        raise _service_unavailable(e, "booking service")

    if result.ok:
        logger.info("Booking created successfully")
        return _created(result)

    if result.error_body is None:
        raise UpstreamError(result.status, {"error": "Unknown error from backend"})
    raise UpstreamError(result.status, result.error_body)


# ============================================================================
# Seat Layouts
# ============================================================================

@proxy_router.get("/seat-layouts")
async def get_seat_layout(
    locationId: Optional[str] = Query(None, description="Studio location"),
    session: Optional[SessionContext] = Depends(get_optional_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """Seat layout of a location, or null when it has none."""
    if not locationId:
        raise BadRequestError("locationId is required")

    url = f"{settings.tenant_backend_url}/api/seat-layouts"
    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings, _token(session)),
            params=with_organization_param(settings, [("locationId", locationId)]),
        )
    except BackendTransportError as e:
        logger.error(
            f"Seat layout unavailable. Is {settings.tenant_backend_url} running?",
            extra={"failure": describe_transport_error(e)},
        )
        return JSONResponse(content=None)

    if result.ok:
        if not result.is_json:
            raise GatewayError("Invalid response from server")
        return JSONResponse(content=result.data)

    if result.status == status.HTTP_404_NOT_FOUND:
        return JSONResponse(content=None)

    raise GatewayError("Failed to fetch seat layout", status_code=result.status)


@proxy_router.get("/seat-layouts/{seat_layout_id}/seats")
async def list_seats(
    seat_layout_id: str,
    session: Optional[SessionContext] = Depends(get_optional_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """
    Seats of a layout.

    Seats are public, so the call is made anonymously first and repeated
    once with the caller's token only when the backend answers 401/403.
    """
    url = f"{settings.tenant_backend_url}/api/seat-layouts/{quote(seat_layout_id, safe='')}/seats"
    params = with_organization_param(settings)

    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings),
            params=params,
        )
        if result.status in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN) and session:
            logger.info("Public seat access failed, retrying with session token")
            result = await request_backend(
                backend_client,
                url,
                headers=build_backend_headers(settings, session.access_token),
                params=params,
            )
    except BackendTransportError as e:
        logger.error(
            f"Seats unavailable, returning empty list. Is {settings.tenant_backend_url} running?",
            extra={"failure": describe_transport_error(e)},
        )
        return []

    if result.ok:
        if not result.is_json:
            raise GatewayError("Invalid response from server")
        seats = normalize_collection(result.data, keys=("seats", "data"))
        return seats if seats is not None else result.data

    if result.status == status.HTTP_404_NOT_FOUND:
        return []

    raise GatewayError("Failed to fetch seats", status_code=result.status)


# ============================================================================
# Contact
# ============================================================================

@proxy_router.post("/contact", status_code=status.HTTP_201_CREATED)
async def submit_contact(
    body: Dict[str, Any] = Body(...),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """Forward a contact form message; the backend's JSON is returned unchanged."""
    url = f"{settings.tenant_backend_url}/api/contact"
    try:
        result = await request_backend(
            backend_client,
            url,
            method="POST",
            headers=build_backend_headers(settings),
            json=body,
        )
    except BackendTransportError as e:
        raise _service_unavailable(e, "contact service")

    if not result.ok:
        backend_error = None
        if isinstance(result.error_body, dict):
            backend_error = result.error_body.get("error")
        raise GatewayError(backend_error or "Failed to send message", status_code=result.status)

    return _created(result)
