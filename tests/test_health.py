"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status and version
  - No authentication required
"""

from __future__ import annotations

from api.main import API_VERSION


def test_health_returns_200(api_client):
    """Health endpoint returns 200 with status and version."""
    client, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": API_VERSION}


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without a session cookie."""
    client, _ = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200


def test_unknown_host_rejected(api_client):
    """TrustedHostMiddleware rejects Host headers outside ALLOWED_HOSTS."""
    client, _ = api_client
    resp = client.get("/api/v1/health", headers={"Host": "evil.example"})
    assert resp.status_code == 400
