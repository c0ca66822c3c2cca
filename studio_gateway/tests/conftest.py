"""
Shared fixtures for the gateway test suite.

Outbound calls never leave the process: the app is built with an
``httpx.AsyncClient`` whose transport is an ``httpx.MockTransport`` driven by
``BackendStub``. Settings are swapped with ``app.dependency_overrides``.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from studio_gateway.config import Settings, get_settings
from studio_gateway.main import create_app

TENANT_BE = "http://tenant-be:3001"
SUPABASE = "https://project.supabase.co"

Outcome = Union[Callable[[httpx.Request], httpx.Response], Exception]


class BackendStub:
    """
    Scripted stand-in for the tenant backend and the auth provider.

    Routes are keyed by (method, path). Unscripted routes answer 404 with an
    HTML body, like a misconfigured backend would.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Outcome]] = {}
        self.calls: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        status_code: int = 200,
        json: Any = None,
        text: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> "BackendStub":
        """Queue a response; the last queued response repeats."""
        def respond(request: httpx.Request) -> httpx.Response:
            if text is not None:
                return httpx.Response(status_code, text=text, headers=headers)
            if json is not None:
                return httpx.Response(status_code, json=json, headers=headers)
            return httpx.Response(status_code, headers=headers)

        self.routes.setdefault((method, path), []).append(respond)
        return self

    def fail(self, method: str, path: str, exc: Exception) -> "BackendStub":
        self.routes.setdefault((method, path), []).append(exc)
        return self

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [call for call in self.calls if call.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        outcomes = self.routes.get((request.method, request.url.path))
        if not outcomes:
            return httpx.Response(404, text="<!DOCTYPE html><html>Not Found</html>")

        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome(request)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        TENANT_BE_URL=TENANT_BE,
        ORGANIZATION_ID="org-123",
        SUPABASE_URL=SUPABASE,
        SUPABASE_ANON_KEY="anon-key",
        SUPABASE_SERVICE_ROLE_KEY="service-role-key",
        SUPABASE_JWT_SECRET=None,
        MAIN_BACKEND_API_KEY=None,
        SITE_URL="https://studio.example.com",
        TENANT_FE_URL=None,
    )


@pytest.fixture
def backend() -> BackendStub:
    return BackendStub()


@pytest.fixture
def app(test_settings, backend):
    """Gateway app wired to the backend stub."""
    backend_client = httpx.AsyncClient(transport=httpx.MockTransport(backend.handler))
    app = create_app(backend_client=backend_client)
    app.dependency_overrides[get_settings] = lambda: test_settings
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Authorization headers carrying a session access token."""
    return {"Authorization": "Bearer member-access-token"}
