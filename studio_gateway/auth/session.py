"""
Session Access Module
=====================

Obtains the caller's auth-provider session token for the current request.

The booking front-end holds a Supabase session and sends its access token
either as ``Authorization: Bearer <token>`` or in the ``sb-access-token``
cookie. This module never issues, refreshes or mutates sessions; it only
reads the token and, when ``SUPABASE_JWT_SECRET`` is configured, verifies it
with PyJWT before it is forwarded to the tenant backend.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from ..config import Settings, get_settings
from ..exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"
SUPABASE_JWT_ALGORITHM = "HS256"
SUPABASE_JWT_AUDIENCE = "authenticated"


# =============================================================================
# Session Context
# =============================================================================

@dataclass(frozen=True)
class SessionContext:
    """Read-only view of the caller's session for one request."""

    access_token: str
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        return self.claims.get("sub")

    @property
    def email(self) -> Optional[str]:
        return self.claims.get("email")


# =============================================================================
# Token Extraction
# =============================================================================

def extract_token_from_header(authorization: Optional[str]) -> Optional[str]:
    """
    Extract Bearer token from Authorization header.

    Args:
        authorization: Authorization header value

    Returns:
        Extracted token string, or None if the header is absent or malformed
    """
    if not authorization:
        return None

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.debug("Ignoring Authorization header with unexpected format")
        return None

    return parts[1]


def get_access_token(request: Request) -> Optional[str]:
    """Token from the Authorization header, falling back to the session cookie."""
    token = extract_token_from_header(request.headers.get("Authorization"))
    if token:
        return token
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


# =============================================================================
# Token Verification
# =============================================================================

def verify_access_token(token: str, settings: Settings) -> Optional[Dict[str, Any]]:
    """
    Verify a session access token.

    Args:
        token: Access token string
        settings: Application settings

    Returns:
        Decoded claims when valid, an empty dict when verification is not
        configured, or None when the token is invalid or expired.

    Example:
        >>> claims = verify_access_token(token, get_settings())
        >>> user_id = claims.get("sub") if claims else None
    """
    if not settings.SUPABASE_JWT_SECRET:
        return {}

    try:
        decoded = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[SUPABASE_JWT_ALGORITHM],
            audience=SUPABASE_JWT_AUDIENCE,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "require": ["exp", "sub"],
            },
        )
    except ExpiredSignatureError:
        logger.warning("Session token expired")
        return None
    except InvalidTokenError as e:
        logger.warning(f"Invalid session token: {e}")
        return None

    logger.debug(
        "Session token verified",
        extra={"user_id": decoded.get("sub")},
    )
    return decoded


def load_session(request: Request, settings: Settings) -> Optional[SessionContext]:
    """
    Resolve the session for a request.

    Returns None when no token is present or the token fails verification.
    """
    token = get_access_token(request)
    if not token:
        return None

    claims = verify_access_token(token, settings)
    if claims is None:
        return None

    return SessionContext(access_token=token, claims=claims)


# =============================================================================
# FastAPI Dependencies
# =============================================================================

async def get_optional_session(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> Optional[SessionContext]:
    """
    FastAPI dependency for public routes.

    Returns the session when one is present and valid, None otherwise. The
    route then calls the backend anonymously.

    Usage:
        @router.get("/public")
        async def route(session: Optional[SessionContext] = Depends(get_optional_session)):
            ...
    """
    return load_session(request, settings)


async def require_session(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> SessionContext:
    """
    FastAPI dependency for protected routes.

    Raises:
        UnauthorizedError: If no valid session is present
    """
    session = load_session(request, settings)
    if session is None:
        logger.info(
            "Rejected request without a valid session",
            extra={"path": request.url.path, "method": request.method},
        )
        raise UnauthorizedError()
    return session


__all__ = [
    "SessionContext",
    "extract_token_from_header",
    "get_access_token",
    "verify_access_token",
    "load_session",
    "get_optional_session",
    "require_session",
]
