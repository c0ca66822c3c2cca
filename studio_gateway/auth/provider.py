"""
Auth provider (Supabase) calls.

Two REST surfaces of the Supabase project are used:

- the GoTrue admin API (``/auth/v1/admin/generate_link``) to mint signup
  confirmation and password recovery links without sending e-mail;
- PostgREST (``/rest/v1/organization_settings``) for the single row holding
  the studio's bank transfer details.

All calls go through ``request_backend`` so they share its error envelope.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx

from ..config import Settings
from ..exceptions import ProviderConfigurationError
from ..proxy.client import BackendResponse, request_backend

logger = logging.getLogger(__name__)

ORGANIZATION_SETTINGS_TABLE = "organization_settings"
ORGANIZATION_SETTINGS_ROW_ID = 1


def _admin_headers(settings: Settings) -> Dict[str, str]:
    if not settings.supabase_url or not settings.SUPABASE_SERVICE_ROLE_KEY:
        raise ProviderConfigurationError()
    return {
        "apikey": settings.SUPABASE_SERVICE_ROLE_KEY,
        "Authorization": f"Bearer {settings.SUPABASE_SERVICE_ROLE_KEY}",
    }


def _rest_headers(settings: Settings, access_token: Optional[str] = None) -> Dict[str, str]:
    if not settings.supabase_url or not settings.SUPABASE_ANON_KEY:
        raise ProviderConfigurationError()
    # Row level security is evaluated against the caller's token when present
    return {
        "apikey": settings.SUPABASE_ANON_KEY,
        "Authorization": f"Bearer {access_token or settings.SUPABASE_ANON_KEY}",
    }


# =============================================================================
# Link Generation
# =============================================================================

async def generate_link(
    client: httpx.AsyncClient,
    settings: Settings,
    link_type: str,
    email: str,
    redirect_to: str,
) -> BackendResponse:
    """
    Ask the auth provider for an action link.

    Args:
        client: Shared HTTP client
        settings: Application settings
        link_type: "signup" or "recovery"
        email: Address the link is generated for
        redirect_to: Where the provider redirects after verification

    Raises:
        ProviderConfigurationError: If the admin URL or key is not configured
    """
    url = f"{settings.supabase_url}/auth/v1/admin/generate_link"
    logger.info(f"Generating {link_type} link", extra={"link_type": link_type})
    return await request_backend(
        client,
        url,
        method="POST",
        headers=_admin_headers(settings),
        json={"type": link_type, "email": email, "redirect_to": redirect_to},
    )


def extract_token_hash(payload: Any) -> Tuple[Optional[str], Optional[str]]:
    """
    Pull the action link and its token hash out of a generate-link response.

    The link is read from ``properties.action_link`` (or a top-level
    ``action_link``) and the hash from its ``token_hash`` query parameter.
    When the link has no such parameter, the ``token_hash`` or
    ``hashed_token`` properties are used instead.

    Returns:
        (action_link, token_hash); either may be None.

    Example:
        >>> extract_token_hash({"properties": {"action_link": "https://x/verify?token_hash=abc"}})
        ('https://x/verify?token_hash=abc', 'abc')
    """
    if not isinstance(payload, dict):
        return None, None

    properties = payload.get("properties")
    if not isinstance(properties, dict):
        properties = payload

    action_link = properties.get("action_link") or None
    token_hash = None

    if action_link:
        try:
            query = parse_qs(urlsplit(action_link).query)
        except ValueError as e:
            logger.error(f"Error parsing action link URL: {e}")
            query = {}
        values = query.get("token_hash")
        if values:
            token_hash = values[0]

    if not token_hash:
        token_hash = properties.get("token_hash") or properties.get("hashed_token") or None

    return action_link, token_hash


def build_action_link(base_url: str, path: str, token_hash: str, link_type: str) -> str:
    """Link to a front-end page that verifies ``token_hash`` itself."""
    query = urlencode({"token_hash": token_hash, "type": link_type})
    return f"{base_url}{path}?{query}"


# =============================================================================
# Organization Settings Row
# =============================================================================

async def fetch_bank_details(
    client: httpx.AsyncClient,
    settings: Settings,
    access_token: Optional[str] = None,
) -> BackendResponse:
    """Read ``bank_details`` from the organization settings row."""
    url = f"{settings.supabase_url}/rest/v1/{ORGANIZATION_SETTINGS_TABLE}"
    return await request_backend(
        client,
        url,
        headers=_rest_headers(settings, access_token),
        params={"select": "bank_details", "id": f"eq.{ORGANIZATION_SETTINGS_ROW_ID}"},
    )


async def upsert_bank_details(
    client: httpx.AsyncClient,
    settings: Settings,
    bank_details: Dict[str, Any],
    access_token: str,
) -> BackendResponse:
    """Insert or update the single organization settings row."""
    url = f"{settings.supabase_url}/rest/v1/{ORGANIZATION_SETTINGS_TABLE}"
    headers = _rest_headers(settings, access_token)
    headers["Prefer"] = "resolution=merge-duplicates,return=representation"
    return await request_backend(
        client,
        url,
        method="POST",
        headers=headers,
        params={"on_conflict": "id"},
        json={
            "id": ORGANIZATION_SETTINGS_ROW_ID,
            "bank_details": bank_details,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        },
    )


def first_row(payload: Any) -> Optional[Dict[str, Any]]:
    """PostgREST returns arrays; the settings table holds at most one row."""
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        return payload[0]
    if isinstance(payload, dict):
        return payload
    return None
