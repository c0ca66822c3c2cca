"""
Authentication Package

Session token access and auth provider (Supabase) integration.

Modules:
- session: Bearer token extraction, optional JWT verification, and the
  FastAPI dependencies for public and protected routes
- provider: Admin link generation and organization settings REST calls
- routes: Confirmation and password reset link endpoints (/api/auth/*)
"""

from .routes import auth_router

__all__ = [
    "auth_router",
]
