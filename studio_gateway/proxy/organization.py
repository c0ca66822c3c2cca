"""
Organization routes.

- GET  /api/organization               studio profile from the tenant backend
- GET  /api/organization/bank-details  bank transfer details (public)
- POST /api/organization/bank-details  update bank transfer details

The profile never fails: when the backend cannot be reached the configured
organization name is returned. Bank details live in the auth provider's
organization settings row, not in the tenant backend.
"""

import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from ..auth.provider import fetch_bank_details, first_row, upsert_bank_details
from ..auth.session import SessionContext, get_optional_session, require_session
from ..config import Settings, get_settings
from ..exceptions import BackendTransportError, BadRequestError, GatewayError
from ..models import BankDetailsResponse, BankDetailsUpdate
from .client import (
    BackendResponse,
    build_backend_headers,
    describe_transport_error,
    get_backend_client,
    read_json_object,
    request_backend,
)

logger = logging.getLogger(__name__)

organization_router = APIRouter(prefix="/api/organization", tags=["Organization"])


def _profile_or_default(result: BackendResponse, settings: Settings) -> Any:
    """Backend profile JSON; a non-JSON success body yields the default name."""
    if result.is_json:
        return result.data
    logger.error(
        "Non-JSON response from organization endpoint, returning default organization name",
        extra={"body_preview": result.text[:200]},
    )
    return {"name": settings.ORGANIZATION_NAME}


@organization_router.get("")
async def get_organization(
    session: Optional[SessionContext] = Depends(get_optional_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """
    Studio profile.

    Sent with the API key (when configured), the organization id and the
    caller's token. If the backend refuses, the call is repeated once with
    the API key alone before falling back to the default name.
    """
    url = f"{settings.tenant_backend_url}/api/organization"
    access_token = session.access_token if session else None

    try:
        result = await request_backend(
            backend_client,
            url,
            headers=build_backend_headers(settings, access_token, include_api_key=True),
        )
        if result.ok:
            return _profile_or_default(result, settings)

        if settings.MAIN_BACKEND_API_KEY:
            result = await request_backend(
                backend_client,
                url,
                headers=build_backend_headers(settings, include_api_key=True),
            )
            if result.ok:
                return _profile_or_default(result, settings)
    except BackendTransportError as e:
        logger.error(
            f"Connection failed to tenant backend at {settings.tenant_backend_url}",
            extra={"failure": describe_transport_error(e)},
        )
        return {"name": settings.ORGANIZATION_NAME}

    logger.warning("Organization API failed, returning default organization name")
    return {"name": settings.ORGANIZATION_NAME}


@organization_router.get("/bank-details", response_model=BankDetailsResponse)
async def get_bank_details(
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """Bank details for payment instructions; null when none are stored."""
    try:
        result = await fetch_bank_details(backend_client, settings)
    except BackendTransportError as e:
        logger.error(f"Error in bank details API: {e.reason}")
        raise GatewayError("Failed to fetch bank details")

    if not result.ok:
        logger.error(
            "Error fetching bank details",
            extra={"status_code": result.status, "error_message": result.error},
        )
        raise GatewayError("Failed to fetch bank details")

    row = first_row(result.data)
    return BankDetailsResponse(bankDetails=row.get("bank_details") if row else None)


@organization_router.post("/bank-details", response_model=BankDetailsResponse)
async def update_bank_details(
    request: Request,
    session: SessionContext = Depends(require_session),
    settings: Settings = Depends(get_settings),
    backend_client: httpx.AsyncClient = Depends(get_backend_client),
):
    """Store bank details; account name, bank name and account number are required."""
    try:
        body = BankDetailsUpdate.model_validate(await read_json_object(request))
    except ValidationError as e:
        logger.warning("Rejected invalid bank details body", extra={"errors": str(e.errors())[:200]})
        raise BadRequestError("Invalid request body")

    if body.bankDetails is None or not body.bankDetails.is_complete:
        raise BadRequestError("Missing required bank details")

    bank_details = body.bankDetails.model_dump(exclude_none=True)
    try:
        result = await upsert_bank_details(
            backend_client,
            settings,
            bank_details,
            session.access_token,
        )
    except BackendTransportError as e:
        logger.error(f"Error in bank details API: {e.reason}")
        raise GatewayError("Failed to update bank details")

    if not result.ok:
        logger.error(
            "Error updating bank details",
            extra={"status_code": result.status, "error_message": result.error},
        )
        raise GatewayError(
            "Failed to update bank details",
            payload={"error": "Failed to update bank details", "details": result.error},
        )

    row = first_row(result.data)
    return BankDetailsResponse(bankDetails=row.get("bank_details") if row else bank_details)
