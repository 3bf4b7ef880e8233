"""Integration tests for /api/users/* -- read-only user endpoints."""

from __future__ import annotations

import pytest

from auth.policy import ROLE_PERMISSIONS


class TestMe:
    @pytest.mark.parametrize("who", ["admin", "volunteer", "user"])
    def test_me_returns_verified_identity(self, api, who):
        credential = getattr(api, who)
        resp = api.client.get("/api/users/me", headers=api.auth_headers(credential))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["userId"] == credential.id
        assert data["email"] == credential.email
        assert data["role"] == who
        assert data["permissions"] == sorted(ROLE_PERMISSIONS[who])

    def test_spoofed_headers_do_not_change_identity(self, api):
        headers = {**api.auth_headers(api.user), "x-user-id": str(api.admin.id), "x-user-role": "admin"}
        data = api.client.get("/api/users/me", headers=headers).json()["data"]
        assert data["userId"] == api.user.id
        assert data["role"] == "user"

    def test_missing_token(self, api):
        resp = api.client.get("/api/users/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "MISSING_TOKEN"


class TestListUsers:
    def test_paginated_list(self, api):
        resp = api.client.get("/api/users?page=1&limit=2", headers=api.auth_headers(api.user))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert len(data["users"]) == 2
        total = api.store.count_credentials()
        assert data["pagination"] == {"page": 1, "limit": 2, "total": total, "totalPages": -(-total // 2)}

    def test_role_filter(self, api):
        resp = api.client.get("/api/users?role=volunteer", headers=api.auth_headers(api.volunteer))
        users = resp.json()["data"]["users"]
        assert users
        assert {u["role"] for u in users} == {"volunteer"}

    @pytest.mark.parametrize("query", ["page=0", "limit=0", "limit=101", "role=root"])
    def test_invalid_query(self, api, query):
        resp = api.client.get(f"/api/users?{query}", headers=api.auth_headers(api.user))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_page_past_end_is_empty(self, api):
        resp = api.client.get("/api/users?page=50&limit=10", headers=api.auth_headers(api.user))
        assert resp.status_code == 200
        assert resp.json()["data"]["users"] == []


class TestGetUser:
    def test_get_user(self, api):
        resp = api.client.get(f"/api/users/{api.volunteer.id}", headers=api.auth_headers(api.user))
        assert resp.status_code == 200
        assert resp.json()["data"]["email"] == api.volunteer.email

    def test_unknown_user(self, api):
        resp = api.client.get("/api/users/999999", headers=api.auth_headers(api.user))
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "message": "User not found", "error": {"code": "NOT_FOUND"}}

    def test_non_integer_id(self, api):
        resp = api.client.get("/api/users/abc", headers=api.auth_headers(api.user))
        assert resp.status_code == 400
