"""
Authentication link routes.

Generates signup confirmation and password recovery links through the auth
provider's admin API so that the studio can send them in its own e-mails.
The only string work in the gateway happens here: the provider returns a
verification URL and the ``token_hash`` query parameter is extracted from it.
"""

import logging

import httpx
from fastapi import APIRouter, Depends, status

from ..config import Settings, get_settings
from ..exceptions import BackendTransportError, BadRequestError, GatewayError
from ..models import ConfirmationLinkResponse, LinkRequest, PasswordResetLinkResponse
from ..proxy.client import get_backend_client
from .provider import build_action_link, extract_token_hash, generate_link

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

auth_router = APIRouter(
    prefix="/api/auth",
    tags=["authentication"],
)


async def _generate(
    client: httpx.AsyncClient,
    settings: Settings,
    link_type: str,
    email: str,
    redirect_to: str,
    failure_message: str,
):
    """Call the provider and return (action_link, token_hash)."""
    try:
        result = await generate_link(client, settings, link_type, email, redirect_to)
    except BackendTransportError as e:
        logger.error(f"Auth provider unreachable while generating {link_type} link: {e.reason}")
        raise GatewayError(
            "Cannot connect to authentication service. Please try again later.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    if not result.ok:
        logger.error(
            f"Error generating {link_type} link",
            extra={"status_code": result.status, "error_message": result.error},
        )
        raise GatewayError(result.error or failure_message)

    return extract_token_hash(result.data)


# =============================================================================
# Password Reset Link
# =============================================================================

@auth_router.post("/generate-password-reset-link", response_model=PasswordResetLinkResponse)
async def generate_password_reset_link(
    body: LinkRequest,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_backend_client),
):
    """
    Generate a password recovery link for ``email``.

    Flow:
    1. Ask the provider for a ``recovery`` link redirecting to /auth/reset-password
    2. Extract ``token_hash`` from ``properties.action_link``
    3. Fall back to the ``token_hash`` / ``hashed_token`` properties
    4. Build a front-end link from the hash if the provider returned none

    Returns:
        {"resetToken": <hash>, "resetLink": <link containing the hash>}
    """
    if not body.email:
        raise BadRequestError("Email is required")

    base_url = settings.reset_link_base_url
    reset_link, token_hash = await _generate(
        client,
        settings,
        link_type="recovery",
        email=body.email,
        redirect_to=f"{base_url}/auth/reset-password",
        failure_message="Failed to generate password reset link",
    )

    if not token_hash:
        logger.error("Failed to extract token from password reset link response")
        raise GatewayError("Failed to extract password reset token")

    if not reset_link:
        reset_link = build_action_link(base_url, "/auth/reset-password", token_hash, "recovery")

    return PasswordResetLinkResponse(resetToken=token_hash, resetLink=reset_link)


# =============================================================================
# Signup Confirmation Link
# =============================================================================

@auth_router.post("/generate-confirmation-link", response_model=ConfirmationLinkResponse)
async def generate_confirmation_link(
    body: LinkRequest,
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_backend_client),
):
    """Generate a signup confirmation link for ``email`` (see password reset)."""
    if not body.email:
        raise BadRequestError("Email is required")

    base_url = settings.site_url
    confirmation_link, token_hash = await _generate(
        client,
        settings,
        link_type="signup",
        email=body.email,
        redirect_to=f"{base_url}/auth/activate",
        failure_message="Failed to generate confirmation link",
    )

    if not token_hash:
        logger.error("Failed to extract token from confirmation link response")
        raise GatewayError("Failed to extract confirmation token")

    if not confirmation_link:
        confirmation_link = build_action_link(base_url, "/auth/activate", token_hash, "signup")

    return ConfirmationLinkResponse(
        confirmationToken=token_hash,
        confirmationLink=confirmation_link,
    )
