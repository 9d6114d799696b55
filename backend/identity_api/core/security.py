import hashlib
import hmac
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from identity_api.core.errors import ServiceError

INVALID_TOKEN = "Invalid or expired token"


def _aware_utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PasswordHasher:
    """bcrypt through passlib. Hashing runs off the event loop."""

    def __init__(self, rounds: int = 10):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    async def hash(self, plaintext: str) -> str:
        return await run_in_threadpool(self._context.hash, plaintext)

    async def verify(self, plaintext: str, hashed: str | None) -> bool:
        if not hashed:
            await self.dummy_verify()
            return False
        try:
            return await run_in_threadpool(self._context.verify, plaintext, hashed)
        except (ValueError, TypeError):
            # Unidentifiable or corrupt hash.
            return False

    async def dummy_verify(self) -> None:
        await run_in_threadpool(self._context.dummy_verify)


@dataclass(frozen=True)
class TokenClaims:
    id: uuid.UUID
    email: str | None
    username: str | None
    tenant_id: uuid.UUID | None
    application_id: uuid.UUID | None
    exp: int


def _opt_uuid(value: Any) -> uuid.UUID | None:
    return uuid.UUID(str(value)) if value else None


class TokenService:
    """Signs and verifies stateless session tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expires_minutes: int = 60 * 24,
        clock: Callable[[], datetime] = _aware_utcnow,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = timedelta(minutes=expires_minutes)
        self._clock = clock

    def issue(self, user: Any) -> str:
        now = self._clock()
        payload = {
            "id": str(user.id),
            "email": user.email,
            "username": user.username,
            "tenant_id": str(user.tenant_id) if user.tenant_id else None,
            "application_id": str(user.application_id) if user.application_id else None,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims:
        # Signature, expiry and malformed claims all collapse into one error.
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
            return TokenClaims(
                id=uuid.UUID(str(payload["id"])),
                email=payload.get("email"),
                username=payload.get("username"),
                tenant_id=_opt_uuid(payload.get("tenant_id")),
                application_id=_opt_uuid(payload.get("application_id")),
                exp=int(payload["exp"]),
            )
        except (JWTError, KeyError, ValueError, TypeError):
            raise ServiceError.unauthorized(INVALID_TOKEN)


def api_key_hash(api_key: str, secret: str) -> str:
    # Stable HMAC hash for API keys; store only this.
    return hmac.new(secret.encode("utf-8"), api_key.encode("utf-8"), hashlib.sha256).hexdigest()


def generate_api_key(prefix: str) -> str:
    # Prefix is helpful for identification; the secret portion is 32 random bytes.
    return f"{prefix}{secrets.token_hex(32)}"


def generate_verification_token() -> str:
    return secrets.token_hex(32)
