"""
Studio Gateway

Thin proxy gateway between an indoor-cycling studio's booking front-end and
its tenant backend service.

Packages:
- auth: Session token access and auth provider link generation
- proxy: Tenant backend request helper and proxy routes

The request flow:
1. Front-end calls a gateway route under /api
2. Gateway reads the caller's session token, if any
3. Gateway makes one call to the tenant backend (or auth provider)
4. Gateway reshapes the JSON and maps failures to a small set of statuses
"""

__version__ = "1.0.0"
