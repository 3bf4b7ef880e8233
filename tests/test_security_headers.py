"""Integration tests for the add_security_headers middleware in api/main.py.

The headers must reach every response: public routes, route errors, and
responses the request gate writes itself before any route runs.
"""

from __future__ import annotations

import pytest

from api.main import SECURITY_HEADERS


def _assert_security_headers(resp):
    for name, value in SECURITY_HEADERS.items():
        assert resp.headers[name] == value, name


def test_public_route(api):
    resp = api.client.get("/api/health")
    assert resp.status_code == 200
    _assert_security_headers(resp)


@pytest.mark.parametrize(
    "path, headers, status",
    [
        ("/api/users/me", {}, 401),
        ("/api/users/me", {"Authorization": "Bearer not-a-token"}, 401),
    ],
)
def test_gate_rejection(api, path, headers, status):
    resp = api.client.get(path, headers=headers)
    assert resp.status_code == status
    _assert_security_headers(resp)


def test_admin_rejection(api):
    resp = api.client.get("/api/admin/users", headers=api.auth_headers(api.user))
    assert resp.status_code == 403
    _assert_security_headers(resp)


def test_validation_error(api):
    resp = api.client.post("/api/auth/login", json={"email": "not-an-email"})
    assert resp.status_code == 400
    _assert_security_headers(resp)


def test_preflight(api):
    resp = api.client.options("/api/users", headers={"Origin": "http://localhost:3000"})
    assert resp.status_code == 200
    _assert_security_headers(resp)


def test_hsts_and_framing_values(api):
    resp = api.client.get("/api/health")
    assert resp.headers["strict-transport-security"] == "max-age=63072000; includeSubDomains; preload"
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "SAMEORIGIN"
    assert "frame-ancestors 'self'" in resp.headers["content-security-policy"]
