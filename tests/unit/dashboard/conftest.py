"""
Dashboard Test Fixtures
=======================

Shared fixtures for dashboard unit tests.

For Developers:
    - `app` is a fresh FastAPI app over the moto table; it never touches
      the module-level app built from environment variables
    - `client` does not follow redirects so guard decisions stay visible
    - Placeholder page routes stand in for the dashboard UI
"""

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def app(role_services):
    from src.lambdas.dashboard.handler import create_app

    app = create_app(role_services)

    @app.get("/dashboard")
    async def landing_page():
        return {"page": "landing"}

    @app.get("/dashboard/admin")
    async def admin_page():
        return {"page": "admin"}

    @app.get("/dashboard/publisher")
    async def publisher_page():
        return {"page": "publisher"}

    return app


@pytest.fixture
def client(app):
    return TestClient(app, follow_redirects=False)
