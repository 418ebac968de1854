"""
Shared test fixtures.

Provides a FastAPI TestClient wired to:
  • a RateLimitGuard on the production profile driven by a fake clock
  • slowapi endpoint limits disabled (see test_endpoint_limits.py)

The client fixtures run the full lifespan so the OTP store and WhatsApp
sender exist; WhatsApp delivery stays in console mode because no gateway
URL is configured.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from portal.dependencies import get_current_admin, get_rate_limit_guard
from portal.main import app
from portal.rate_limit.config import PRODUCTION_RATE_LIMIT_CONFIG
from portal.rate_limit.guard import RateLimitGuard
from tests.mocks.clock import FakeClock
from tests.mocks.models import MOCK_ADMIN


# ── Fixtures ───────────────────────────────────────────────────────────────


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def guard(clock: FakeClock) -> RateLimitGuard:
    """Isolated guard on the strict profile."""
    return RateLimitGuard(PRODUCTION_RATE_LIMIT_CONFIG, clock=clock)


@pytest.fixture()
def _test_env(monkeypatch, guard: RateLimitGuard) -> RateLimitGuard:
    """
    Internal fixture: swap in the test guard, keep WhatsApp in console mode
    and disable slowapi limits.
    """
    monkeypatch.setattr("portal.services.whatsapp.whatsapp_enabled", lambda: False)

    # ── Disable endpoint rate limiting in tests ───────────────────────
    from portal.rate_limit.limiter import limiter as _limiter
    monkeypatch.setattr(_limiter, "enabled", False)

    app.dependency_overrides[get_rate_limit_guard] = lambda: guard
    yield guard
    app.dependency_overrides.clear()


@pytest.fixture()
def client(_test_env: RateLimitGuard) -> TestClient:
    """TestClient without an admin session."""
    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc


@pytest.fixture()
def admin_client(_test_env: RateLimitGuard) -> TestClient:
    """TestClient with admin auth bypassed."""

    async def _mock_current_admin():
        return MOCK_ADMIN

    app.dependency_overrides[get_current_admin] = _mock_current_admin

    with TestClient(app, raise_server_exceptions=False) as tc:
        yield tc
