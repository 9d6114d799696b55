PASSWORD = "Passw0rd!"


def key_headers(api_key: str) -> dict[str, str]:
    return {"X-API-Key": api_key}


def auth_headers(api_key: str, token: str) -> dict[str, str]:
    return {"X-API-Key": api_key, "Authorization": f"Bearer {token}"}


def register(client, api_key: str, email: str = "a@x.com", **overrides):
    body = {"email": email, "password": PASSWORD, "first_name": "A", "last_name": "B"}
    body.update(overrides)
    body = {k: v for k, v in body.items() if v is not None}
    return client.post("/api/auth/register", json=body, headers=key_headers(api_key))


def pending_token(client, api_key: str, email: str) -> str:
    resp = client.get(f"/api/auth/verification-token/{email}", headers=key_headers(api_key))
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["email_verification_token"]


def verify(client, api_key: str, token: str):
    return client.post("/api/auth/verify-email", json={"token": token}, headers=key_headers(api_key))


def login(client, api_key: str, identifier: str = "a@x.com", password: str = PASSWORD):
    return client.post(
        "/api/auth/login",
        json={"identifier": identifier, "password": password},
        headers=key_headers(api_key),
    )


def verified_user(client, api_key: str, email: str = "a@x.com", **overrides) -> dict:
    """Register, verify and log in. Returns the login payload."""
    resp = register(client, api_key, email=email, **overrides)
    assert resp.status_code == 201, resp.text
    assert verify(client, api_key, pending_token(client, api_key, email)).status_code == 200
    resp = login(client, api_key, email)
    assert resp.status_code == 200, resp.text
    return resp.json()
