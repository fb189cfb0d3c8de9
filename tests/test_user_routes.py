"""
tests/test_user_routes.py -- Integration tests for the /api/users directory.

Coverage:
  - 401 without a token, 403 for non-admins on admin-only routes
  - list: pagination metadata, active-only, no password hash in output
  - get: self or admin; other users 403; unknown id 404
  - update: self may change username/email but not role/isActive; admin may
    change anything except demoting or deactivating themselves; duplicates
    400; unknown fields 400; empty body 400
  - delete: admin only; self-delete 400; unknown id 404
  - a deactivated account's token stops working

Fixtures used (from conftest.py):
  - api_client: (client, store, admin_token, admin_id)
"""

from __future__ import annotations

import itertools

import pytest
from fastapi.testclient import TestClient

from api.routes.users import _MAX_PAGE
from auth.store import AccountStore

PASSWORD = "P@ssw0rd1"

ApiClient = tuple[TestClient, AccountStore, str, str]

_seq = itertools.count()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _new_user(client: TestClient) -> tuple[str, str]:
    """Register a fresh user and return (token, id)."""
    n = next(_seq)
    resp = client.post(
        "/api/auth/register",
        json={"username": f"member{n}", "email": f"member{n}@example.com", "password": PASSWORD},
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return body["token"], body["user"]["id"]


class TestAccessControl:
    def test_list_requires_token(self, api_client: ApiClient) -> None:
        client, _store, _token, _uid = api_client
        resp = client.get("/api/users")
        assert resp.status_code == 401
        assert resp.json()["success"] is False

    def test_list_forbidden_for_user(self, api_client: ApiClient) -> None:
        client, _store, _token, _uid = api_client
        token, _ = _new_user(client)
        resp = client.get("/api/users", headers=_bearer(token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_user_cannot_read_other_user(self, api_client: ApiClient) -> None:
        client, _store, _token, admin_id = api_client
        token, _ = _new_user(client)
        resp = client.get(f"/api/users/{admin_id}", headers=_bearer(token))
        assert resp.status_code == 403

    def test_user_lookup_of_unknown_id_is_403(self, api_client: ApiClient) -> None:
        client, _store, _token, _uid = api_client
        token, _ = _new_user(client)
        assert client.get("/api/users/does-not-exist", headers=_bearer(token)).status_code == 403

    def test_deactivated_token_rejected(self, api_client: ApiClient) -> None:
        client, _store, admin_token, _uid = api_client
        token, uid = _new_user(client)
        resp = client.put(f"/api/users/{uid}", json={"isActive": False}, headers=_bearer(admin_token))
        assert resp.status_code == 200
        assert resp.json()["user"]["isActive"] is False

        assert client.get(f"/api/users/{uid}", headers=_bearer(token)).status_code == 401
        assert client.get("/api/auth/profile", headers=_bearer(token)).status_code == 401


class TestListUsers:
    def test_list_as_admin(self, api_client: ApiClient) -> None:
        client, _store, token, _uid = api_client
        _new_user(client)
        resp = client.get("/api/users", headers=_bearer(token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["pagination"]["page"] == 1
        assert body["pagination"]["limit"] == 10
        assert body["pagination"]["total"] >= 2
        for user in body["users"]:
            assert set(user) == {"id", "username", "email", "role", "isActive", "createdAt", "lastLogin"}
        assert "hashed_password" not in resp.text
        assert "$2b$" not in resp.text

    def test_pagination(self, api_client: ApiClient) -> None:
        client, _store, token, _uid = api_client
        for _ in range(3):
            _new_user(client)
        total = client.get("/api/users", headers=_bearer(token)).json()["pagination"]["total"]

        resp = client.get("/api/users", params={"page": 2, "limit": 2}, headers=_bearer(token))
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["users"]) == min(2, total - 2)
        assert body["pagination"]["pages"] == (total + 1) // 2

    def test_inactive_users_hidden(self, api_client: ApiClient) -> None:
        client, store, token, _uid = api_client
        _, uid = _new_user(client)
        store.update_account(uid, is_active=False)
        resp = client.get("/api/users", params={"limit": 100}, headers=_bearer(token))
        assert uid not in {u["id"] for u in resp.json()["users"]}

    @pytest.mark.parametrize(
        "params",
        [{"limit": 0}, {"limit": 101}, {"page": 0}, {"page": "x"}, {"page": 10**19}, {"page": _MAX_PAGE + 1}],
    )
    def test_bad_query_is_400(self, api_client: ApiClient, params: dict) -> None:
        client, _store, token, _uid = api_client
        resp = client.get("/api/users", params=params, headers=_bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_last_accepted_page_is_empty(self, api_client: ApiClient) -> None:
        client, _store, token, _uid = api_client
        resp = client.get("/api/users", params={"page": _MAX_PAGE, "limit": 100}, headers=_bearer(token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["users"] == []
        assert body["pagination"]["page"] == _MAX_PAGE


class TestGetUser:
    def test_self(self, api_client: ApiClient) -> None:
        client, _store, _token, _uid = api_client
        token, uid = _new_user(client)
        resp = client.get(f"/api/users/{uid}", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == uid

    def test_admin_reads_any(self, api_client: ApiClient) -> None:
        client, _store, admin_token, _uid = api_client
        _, uid = _new_user(client)
        assert client.get(f"/api/users/{uid}", headers=_bearer(admin_token)).status_code == 200

    def test_unknown_id_404_for_admin(self, api_client: ApiClient) -> None:
        client, _store, admin_token, _uid = api_client
        resp = client.get("/api/users/does-not-exist", headers=_bearer(admin_token))
        assert resp.status_code == 404
        assert resp.json()["message"] == "User not found"


class TestUpdateUser:
    def test_self_update_username_and_email(self, api_client: ApiClient) -> None:
        client, _store, _token, _uid = api_client
        token, uid = _new_user(client)
        resp = client.put(
            f"/api/users/{uid}",
            json={"username": f"renamed{uid[:6]}", "email": f"  Renamed{uid[:6]}@Example.com"},
            headers=_bearer(token),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "User updated successfully"
        assert body["user"]["username"] == f"renamed{uid[:6]}"
        assert body["user"]["email"] == f"renamed{uid[:6]}@example.com"

    @pytest.mark.parametrize("payload", [{"role": "admin"}, {"isActive": False}])
    def test_user_cannot_change_privileged_fields(self, api_client: ApiClient, payload: dict) -> None:
        client, _store, _token, _uid = api_client
        token, uid = _new_user(client)
        resp = client.put(f"/api/users/{uid}", json=payload, headers=_bearer(token))
        assert resp.status_code == 403

    def test_user_cannot_update_other(self, api_client: ApiClient) -> None:
        client, _store, _token, admin_id = api_client
        token, _ = _new_user(client)
        resp = client.put(f"/api/users/{admin_id}", json={"username": "hijack"}, headers=_bearer(token))
        assert resp.status_code == 403

    def test_admin_promotes_user(self, api_client: ApiClient) -> None:
        client, _store, admin_token, _uid = api_client
        token, uid = _new_user(client)
        resp = client.put(f"/api/users/{uid}", json={"role": "admin"}, headers=_bearer(admin_token))
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "admin"
        # The stored role is authoritative: the old token now passes admin checks.
        assert client.get("/api/users", headers=_bearer(token)).status_code == 200

    def test_duplicate_username_rejected(self, api_client: ApiClient) -> None:
        client, _store, _token, _uid = api_client
        token, uid = _new_user(client)
        resp = client.put(f"/api/users/{uid}", json={"username": "testadmin"}, headers=_bearer(token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "duplicate"

    def test_unchanged_email_is_not_duplicate(self, api_client: ApiClient) -> None:
        client, store, _token, _uid = api_client
        token, uid = _new_user(client)
        email = store.get_by_id(uid).email
        resp = client.put(f"/api/users/{uid}", json={"email": email}, headers=_bearer(token))
        assert resp.status_code == 200

    @pytest.mark.parametrize(
        "payload",
        [{}, {"password": "NewPassw0rd"}, {"role": "root"}, {"email": "nope"}, {"failed_attempts": 0}],
    )
    def test_invalid_body_is_400(self, api_client: ApiClient, payload: dict) -> None:
        client, _store, admin_token, _uid = api_client
        _, uid = _new_user(client)
        resp = client.put(f"/api/users/{uid}", json=payload, headers=_bearer(admin_token))
        assert resp.status_code == 400

    def test_admin_cannot_demote_self(self, api_client: ApiClient) -> None:
        client, _store, admin_token, admin_id = api_client
        resp = client.put(f"/api/users/{admin_id}", json={"role": "user"}, headers=_bearer(admin_token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_demotion"

    def test_admin_cannot_deactivate_self(self, api_client: ApiClient) -> None:
        client, _store, admin_token, admin_id = api_client
        resp = client.put(f"/api/users/{admin_id}", json={"isActive": False}, headers=_bearer(admin_token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_deactivation"

    def test_update_unknown_id_404(self, api_client: ApiClient) -> None:
        client, _store, admin_token, _uid = api_client
        resp = client.put("/api/users/does-not-exist", json={"username": "ghost"}, headers=_bearer(admin_token))
        assert resp.status_code == 404


class TestDeleteUser:
    def test_admin_deletes_user(self, api_client: ApiClient) -> None:
        client, _store, admin_token, _uid = api_client
        _, uid = _new_user(client)
        resp = client.delete(f"/api/users/{uid}", headers=_bearer(admin_token))
        assert resp.status_code == 200
        assert resp.json()["message"] == "User deleted successfully"
        assert client.get(f"/api/users/{uid}", headers=_bearer(admin_token)).status_code == 404

    def test_user_cannot_delete(self, api_client: ApiClient) -> None:
        client, _store, _token, _uid = api_client
        token, uid = _new_user(client)
        assert client.delete(f"/api/users/{uid}", headers=_bearer(token)).status_code == 403

    def test_admin_cannot_delete_self(self, api_client: ApiClient) -> None:
        client, _store, admin_token, admin_id = api_client
        resp = client.delete(f"/api/users/{admin_id}", headers=_bearer(admin_token))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_delete"

    def test_delete_unknown_id_404(self, api_client: ApiClient) -> None:
        client, _store, admin_token, _uid = api_client
        assert client.delete("/api/users/does-not-exist", headers=_bearer(admin_token)).status_code == 404
