"""
tests/test_health.py -- Integration tests for GET /api/v2/health/.

Covers:
  - 200 with status, version, components and the redirects summary
  - no authentication required, privately cached like every /api/ response
  - a redirects file that failed to load marks the service degraded
"""

from __future__ import annotations

import pytest

from api.main import API_VERSION
from conftest import Harness, write_redirects
from redirects.compiler import RedirectConfigError

HEALTH = "/api/v2/health/"

REDIRECT_RULES = [{"from": "/a", "to": "/b", "permanent": True}]


def test_health_returns_200_with_components(harness: Harness) -> None:
    resp = harness.client.get(HEALTH)
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == API_VERSION
    assert data["components"] == {"app": "ok", "database": "ok", "redirects": "ok"}
    assert data["redirects"]["rules"] == 1
    assert data["redirects"]["file_present"] is True


def test_health_no_auth_required(harness: Harness) -> None:
    resp = harness.client.get(HEALTH, headers={})
    assert resp.status_code == 200
    assert resp.headers["cache-control"].startswith("no-cache, private")


def test_health_without_trailing_slash_redirects(harness: Harness) -> None:
    resp = harness.client.get("/api/v2/health")
    assert resp.status_code == 301
    assert resp.headers["location"].endswith("/api/v2/health/")


def test_failed_redirects_load_is_degraded(harness: Harness, redirects_file) -> None:
    write_redirects(redirects_file, "{not json")
    try:
        with pytest.raises(RedirectConfigError):
            harness.redirects.reload()
        data = harness.client.get(HEALTH).json()
        assert data["status"] == "degraded"
        assert data["components"]["redirects"] == "error"
        # The previous rules keep serving.
        assert data["redirects"]["rules"] == 1
        assert data["redirects"]["last_error"]
    finally:
        write_redirects(redirects_file, REDIRECT_RULES)
        harness.redirects.reload()
    assert harness.client.get(HEALTH).json()["status"] == "healthy"
