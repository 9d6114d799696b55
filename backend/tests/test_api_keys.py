"""
Tests for tenant-scoped API key management
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from tests.utils import auth_headers, key_headers, register, verified_user


@pytest.fixture
def admin(client, seed):
    token = verified_user(client, seed.key_a)["token"]
    return auth_headers(seed.key_a, token)


def _create(client, headers, **body):
    body.setdefault("name", "ci")
    return client.post("/api/api-keys", json=body, headers=headers)


def test_create_returns_key_once(client, seed, admin):
    resp = _create(client, admin)
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["key"].startswith("sk_")
    assert data["prefix"] == data["key"][: len(data["prefix"])]
    assert data["tenant_id"] == str(seed.tenant_a)
    assert data["application_id"] == str(seed.application_a)

    listed = client.get("/api/api-keys", headers=admin).json()["data"]
    assert {k["id"] for k in listed} >= {data["id"]}
    assert all("key" not in k and "key_hash" not in k for k in listed)

    fetched = client.get(f"/api/api-keys/{data['id']}", headers=admin).json()["data"]
    assert "key" not in fetched


def test_new_key_authenticates_into_same_tenant(client, seed, admin):
    raw = _create(client, admin).json()["data"]["key"]
    resp = register(client, raw, email="b@x.com")
    assert resp.status_code == 201
    assert resp.json()["data"]["tenant_id"] == str(seed.tenant_a)


def test_list_is_tenant_scoped(client, seed, admin):
    listed = client.get("/api/api-keys", headers=admin).json()["data"]
    assert listed
    assert all(k["tenant_id"] == str(seed.tenant_a) for k in listed)


def test_expiry_must_be_in_future(client, admin):
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    resp = _create(client, admin, expires_at=past)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Expiration date must be in the future"


def test_deactivate_key(client, admin):
    created = _create(client, admin).json()["data"]
    resp = client.patch(f"/api/api-keys/{created['id']}", json={"status": "inactive"}, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "inactive"

    resp = register(client, created["key"], email="b@x.com")
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid API key"


def test_rename_key(client, admin):
    created = _create(client, admin).json()["data"]
    resp = client.patch(f"/api/api-keys/{created['id']}", json={"name": "renamed"}, headers=admin)
    assert resp.json()["data"]["name"] == "renamed"
    assert resp.json()["data"]["status"] == "active"


def test_delete_and_restore(client, admin):
    created = _create(client, admin).json()["data"]
    key_id = created["id"]

    resp = client.delete(f"/api/api-keys/{key_id}", headers=admin)
    assert resp.status_code == 200
    assert resp.json()["data"]["deleted_at"] is not None
    assert client.get(f"/api/api-keys/{key_id}", headers=admin).status_code == 404
    assert register(client, created["key"], email="b@x.com").status_code == 401

    resp = client.post(f"/api/api-keys/{key_id}/restore", headers=admin)
    assert resp.status_code == 200
    assert resp.json()["data"]["deleted_at"] is None
    assert register(client, created["key"], email="b@x.com").status_code == 201


def test_restore_live_key(client, admin):
    key_id = _create(client, admin).json()["data"]["id"]
    resp = client.post(f"/api/api-keys/{key_id}/restore", headers=admin)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Soft deleted API key not found"


def test_other_tenants_key_is_invisible(client, seed, admin):
    other = verified_user(client, seed.key_b, email="z@x.com")["token"]
    other_headers = auth_headers(seed.key_b, other)
    foreign_id = _create(client, other_headers).json()["data"]["id"]

    assert client.get(f"/api/api-keys/{foreign_id}", headers=admin).status_code == 404
    assert client.delete(f"/api/api-keys/{foreign_id}", headers=admin).status_code == 404
    assert client.get(f"/api/api-keys/{uuid.uuid4()}", headers=admin).status_code == 404


def test_user_must_belong_to_key_tenant(client, seed):
    token = verified_user(client, seed.key_b, email="z@x.com")["token"]
    resp = client.get("/api/api-keys", headers=auth_headers(seed.key_a, token))
    assert resp.status_code == 403


def test_requires_session(client, seed):
    assert client.get("/api/api-keys", headers=key_headers(seed.key_a)).status_code == 401
