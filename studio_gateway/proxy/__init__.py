"""
Proxy Package
=============

Forwards booking front-end requests to the tenant backend.

Main Components:
----------------
- client.py: request_backend helper, header building, response normalization
- routes.py: Sessions, packages, redemptions, coupons, bookings, seats, contact
- organization.py: Studio profile and bank details

Usage:
------
    from studio_gateway.proxy import proxy_router
    app.include_router(proxy_router)
"""

from .organization import organization_router
from .routes import proxy_router

__all__ = ["proxy_router", "organization_router"]
