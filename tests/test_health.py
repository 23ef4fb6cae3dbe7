"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - components.database key present and reports 'ok'
  - No authentication required
"""

from __future__ import annotations


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    resp = api_client.client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    resp = api_client.client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_health_is_not_audited(api_client):
    before = api_client.state.audit_store.count()
    api_client.client.get("/api/v1/health")
    assert api_client.state.audit_store.count() == before


def test_untrusted_host_rejected(api_client):
    resp = api_client.client.get("/api/v1/health", headers={"Host": "evil.example.com"})
    assert resp.status_code == 400
