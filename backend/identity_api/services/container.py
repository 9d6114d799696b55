from dataclasses import dataclass

from identity_api.core.config import Settings
from identity_api.core.security import PasswordHasher, TokenService
from identity_api.services.api_keys import ApiKeyService
from identity_api.services.auth import AuthService
from identity_api.services.users import UserService
from identity_api.services.verification import EmailVerificationManager


@dataclass(frozen=True)
class Services:
    hasher: PasswordHasher
    tokens: TokenService
    users: UserService
    api_keys: ApiKeyService
    verifier: EmailVerificationManager
    auth: AuthService


def build_services(settings: Settings) -> Services:
    """Build every component once; callers pass the result around explicitly."""
    hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)
    tokens = TokenService(
        settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
        expires_minutes=settings.JWT_EXPIRES_MINUTES,
    )
    users = UserService(hasher)
    verifier = EmailVerificationManager(users, ttl_hours=settings.EMAIL_VERIFICATION_TTL_HOURS)
    return Services(
        hasher=hasher,
        tokens=tokens,
        users=users,
        api_keys=ApiKeyService(settings.API_KEY_HASH_SECRET, prefix=settings.API_KEY_PREFIX),
        verifier=verifier,
        auth=AuthService(users, tokens, verifier),
    )
