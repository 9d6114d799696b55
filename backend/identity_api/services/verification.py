"""
Email verification tokens.

A token is issued once, at registration, and stored on the user row. There
is no resend flow: ``fetch_pending_token`` only hands back the token that is
already on file. A consumed token stays on the row but can never be accepted
again, because consuming requires ``is_verified`` to still be false.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.core.database import utcnow
from identity_api.core.errors import ServiceError
from identity_api.core.security import generate_verification_token
from identity_api.models.user import User
from identity_api.services.users import UserService

logger = logging.getLogger(__name__)

ALREADY_VERIFIED = "Email address is already verified"


@dataclass(frozen=True)
class VerificationToken:
    token: str
    expires_at: datetime


class EmailVerificationManager:
    def __init__(self, users: UserService, ttl_hours: int = 24, clock: Callable[[], datetime] = utcnow):
        self.users = users
        self._ttl = timedelta(hours=ttl_hours)
        self._clock = clock

    def issue(self) -> VerificationToken:
        return VerificationToken(token=generate_verification_token(), expires_at=self._clock() + self._ttl)

    async def consume(self, session: AsyncSession, token: str) -> User:
        user = await self.users.find_by_verification_token(session, token)
        if user is None:
            raise ServiceError.bad_request("Invalid verification token")
        if user.is_verified:
            raise ServiceError.bad_request(ALREADY_VERIFIED)
        expires = user.email_verification_expires
        if expires is None or self._clock() > expires:
            raise ServiceError.gone("Verification token has expired")

        await self.users.update(session, user, is_verified=True)
        logger.info("email verified for user id=%s", user.id)
        return user

    async def fetch_pending_token(self, session: AsyncSession, email: str, tenant_id: uuid.UUID) -> User:
        user = await self.users.find_by_email(session, email, tenant_id)
        if user is None:
            raise ServiceError.not_found("User not found")
        if user.is_verified:
            raise ServiceError.bad_request(ALREADY_VERIFIED)
        return user
