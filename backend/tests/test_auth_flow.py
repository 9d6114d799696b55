"""
End-to-end tests for registration, verification, login and sessions
"""

import uuid
from datetime import timedelta

from sqlalchemy import update

from identity_api.core.database import utcnow
from identity_api.models.user import User, UserStatus
from tests.utils import (
    PASSWORD,
    auth_headers,
    key_headers,
    login,
    pending_token,
    register,
    verified_user,
    verify,
)


def _set_user(run_db, email, **values):
    async def _apply(session):
        await session.execute(update(User).where(User.email == email).values(**values))
        await session.commit()

    run_db(_apply)


def test_register_verify_login_me(client, seed):
    resp = register(client, seed.key_a, email="a@x.com")
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully"
    user = body["data"]
    assert user["is_verified"] is False
    assert user["tenant_id"] == str(seed.tenant_a)
    assert user["application_id"] == str(seed.application_a)

    token = pending_token(client, seed.key_a, "a@x.com")
    resp = verify(client, seed.key_a, token)
    assert resp.status_code == 200
    assert resp.json()["data"]["is_verified"] is True

    resp = login(client, seed.key_a, "a@x.com")
    assert resp.status_code == 200
    session_token = resp.json()["token"]

    resp = client.get("/api/auth/me", headers=auth_headers(seed.key_a, session_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Token is valid"
    assert body["data"]["email"] == "a@x.com"
    assert body["data"]["roles"] == []


def test_register_never_returns_secrets(client, seed):
    user = register(client, seed.key_a).json()["data"]
    assert "password" not in user
    assert "password_hash" not in user
    assert "email_verification_token" not in user


def test_tenant_comes_from_api_key_not_body(client, seed):
    resp = register(client, seed.key_a, tenant_id=str(seed.tenant_b), application_id=str(seed.application_b))
    assert resp.status_code == 201
    assert resp.json()["data"]["tenant_id"] == str(seed.tenant_a)


def test_register_duplicate_email(client, seed):
    assert register(client, seed.key_a, email="a@x.com").status_code == 201
    resp = register(client, seed.key_a, email="A@X.com")
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Email already exists"}


def test_register_duplicate_is_global_across_tenants(client, seed):
    assert register(client, seed.key_a, email="a@x.com").status_code == 201
    assert register(client, seed.key_b, email="a@x.com").status_code == 400


def test_register_duplicate_username(client, seed):
    assert register(client, seed.key_a, email=None, username="Alice").status_code == 201
    resp = register(client, seed.key_a, email=None, username="alice")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Username already exists"


def test_register_requires_email_or_username(client, seed):
    resp = register(client, seed.key_a, email=None)
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"


def test_register_rejects_short_password(client, seed):
    resp = register(client, seed.key_a, password="short")
    assert resp.status_code == 400
    fields = [e["field"] for e in resp.json()["errors"]]
    assert "password" in fields
    assert "short" not in resp.text


def test_register_rejects_bad_username(client, seed):
    resp = register(client, seed.key_a, email=None, username="not allowed!")
    assert resp.status_code == 400


def test_login_strips_timestamps(client, seed):
    body = verified_user(client, seed.key_a)
    assert body["message"] == "Login successful"
    data = body["data"]
    for field in ("created_at", "updated_at", "deleted_at", "password_hash", "email_verification_token"):
        assert field not in data
    assert data["roles"] == []
    assert data["last_login_at"] is not None


def test_login_by_username_case_insensitive(client, seed):
    verified_user(client, seed.key_a, username="alice")
    resp = login(client, seed.key_a, "ALICE")
    assert resp.status_code == 200


def test_login_unverified(client, seed):
    register(client, seed.key_a)
    resp = login(client, seed.key_a)
    assert resp.status_code == 403
    assert resp.json()["message"] == "Email address has not been verified"


def test_login_wrong_password_and_unknown_user_look_the_same(client, seed):
    verified_user(client, seed.key_a)
    wrong_password = login(client, seed.key_a, "a@x.com", "WrongPass1!")
    unknown_user = login(client, seed.key_a, "nobody@x.com")
    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json()


def test_login_wrong_password_for_unverified_user_is_401(client, seed):
    register(client, seed.key_a)
    assert login(client, seed.key_a, "a@x.com", "WrongPass1!").status_code == 401


def test_login_from_other_tenant(client, seed):
    verified_user(client, seed.key_a)
    resp = login(client, seed.key_b)
    assert resp.status_code == 401


def test_login_suspended_user(client, seed, run_db):
    verified_user(client, seed.key_a)
    _set_user(run_db, "a@x.com", status=UserStatus.suspended)
    resp = login(client, seed.key_a)
    assert resp.status_code == 403
    assert resp.json()["message"] == "User account is not active"


def test_last_login_advances(client, seed):
    first = verified_user(client, seed.key_a)["data"]["last_login_at"]
    second = login(client, seed.key_a).json()["data"]["last_login_at"]
    assert second > first


def test_verify_email_replay(client, seed):
    register(client, seed.key_a)
    token = pending_token(client, seed.key_a, "a@x.com")
    assert verify(client, seed.key_a, token).status_code == 200
    resp = verify(client, seed.key_a, token)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Email address is already verified"


def test_verify_email_unknown_token(client, seed):
    resp = verify(client, seed.key_a, "0" * 64)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid verification token"


def test_verify_email_expired(client, seed, run_db):
    register(client, seed.key_a)
    token = pending_token(client, seed.key_a, "a@x.com")
    _set_user(run_db, "a@x.com", email_verification_expires=utcnow() - timedelta(seconds=1))
    resp = verify(client, seed.key_a, token)
    assert resp.status_code == 410
    assert resp.json()["message"] == "Verification token has expired"


def test_verification_token_lookup(client, seed):
    resp = client.get("/api/auth/verification-token/nobody@x.com", headers=key_headers(seed.key_a))
    assert resp.status_code == 404

    register(client, seed.key_a)
    resp = client.get("/api/auth/verification-token/A@x.com", headers=key_headers(seed.key_a))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert len(data["email_verification_token"]) == 64
    assert data["is_verified"] is False

    # Other tenants cannot see it.
    resp = client.get("/api/auth/verification-token/a@x.com", headers=key_headers(seed.key_b))
    assert resp.status_code == 404

    verify(client, seed.key_a, data["email_verification_token"])
    resp = client.get("/api/auth/verification-token/a@x.com", headers=key_headers(seed.key_a))
    assert resp.status_code == 400


def test_change_password(client, seed):
    user_id = verified_user(client, seed.key_a)["data"]["id"]
    resp = client.post(
        "/api/auth/change-password",
        json={"user_id": user_id, "current_password": PASSWORD, "new_password": "N3wPassword!"},
        headers=key_headers(seed.key_a),
    )
    assert resp.status_code == 200
    assert resp.json()["message"] == "Password changed successfully"

    assert login(client, seed.key_a).status_code == 401
    assert login(client, seed.key_a, password="N3wPassword!").status_code == 200


def test_change_password_wrong_current(client, seed):
    user_id = verified_user(client, seed.key_a)["data"]["id"]
    resp = client.post(
        "/api/auth/change-password",
        json={"user_id": user_id, "current_password": "nope-nope", "new_password": "N3wPassword!"},
        headers=key_headers(seed.key_a),
    )
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid current password"


def test_change_password_other_tenant(client, seed):
    user_id = verified_user(client, seed.key_a)["data"]["id"]
    resp = client.post(
        "/api/auth/change-password",
        json={"user_id": user_id, "current_password": PASSWORD, "new_password": "N3wPassword!"},
        headers=key_headers(seed.key_b),
    )
    assert resp.status_code == 403
    # Password unchanged.
    assert login(client, seed.key_a).status_code == 200


def test_change_password_unknown_user(client, seed):
    resp = client.post(
        "/api/auth/change-password",
        json={"user_id": str(uuid.uuid4()), "current_password": PASSWORD, "new_password": "N3wPassword!"},
        headers=key_headers(seed.key_a),
    )
    assert resp.status_code == 404


def test_me_requires_bearer(client, seed):
    resp = client.get("/api/auth/me", headers=key_headers(seed.key_a))
    assert resp.status_code == 401
    assert resp.json()["message"] == "Authorization header with Bearer token is required"


def test_me_rejects_garbage_token(client, seed):
    resp = client.get("/api/auth/me", headers=auth_headers(seed.key_a, "not.a.jwt"))
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid or expired token"


def test_me_after_suspension(client, seed, run_db):
    token = verified_user(client, seed.key_a)["token"]
    _set_user(run_db, "a@x.com", status=UserStatus.suspended)
    resp = client.get("/api/auth/me", headers=auth_headers(seed.key_a, token))
    assert resp.status_code == 403


def test_me_after_soft_delete(client, seed, run_db):
    token = verified_user(client, seed.key_a)["token"]
    _set_user(run_db, "a@x.com", deleted_at=utcnow())
    resp = client.get("/api/auth/me", headers=auth_headers(seed.key_a, token))
    assert resp.status_code == 404


def test_responses_carry_security_headers(client, seed):
    resp = register(client, seed.key_a)
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["cache-control"] == "no-store"
    assert resp.headers["x-request-id"]


def test_unknown_route(client, seed):
    resp = client.get("/api/nope", headers=key_headers(seed.key_a))
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Route not found"}
