"""
Authentication use cases: register, login, change password, verify email,
and resolving a bearer token to a live user.

The API key decides the tenant/application; nothing in a request body can
override it.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.core.errors import ServiceError
from identity_api.core.security import TokenService
from identity_api.models.role import Role
from identity_api.models.tenant import Tenant
from identity_api.models.user import User, UserStatus
from identity_api.services.api_keys import ApiKeyScope
from identity_api.services.audit import audit_event
from identity_api.services.repository import Repository
from identity_api.services.users import UserService
from identity_api.services.verification import EmailVerificationManager

logger = logging.getLogger(__name__)

# One message for "no such user" and "wrong password".
INVALID_CREDENTIALS = "Invalid email/username, password, or tenant"
NOT_VERIFIED = "Email address has not been verified"
NOT_ACTIVE = "User account is not active"


@dataclass
class LoginResult:
    user: User
    roles: list[Role]
    token: str


class AuthService:
    def __init__(self, users: UserService, tokens: TokenService, verifier: EmailVerificationManager):
        self.users = users
        self.tokens = tokens
        self.verifier = verifier
        self.tenants = Repository(Tenant)

    @staticmethod
    def _require_tenant(scope: ApiKeyScope) -> uuid.UUID:
        if not scope.tenant_id:
            raise ServiceError.bad_request("API key must be associated with a tenant")
        return scope.tenant_id

    async def _resolve_application(self, session: AsyncSession, scope: ApiKeyScope, tenant_id: uuid.UUID) -> uuid.UUID:
        if scope.application_id:
            return scope.application_id
        tenant = await self.tenants.get(session, tenant_id)
        if tenant is None or not tenant.application_id:
            raise ServiceError.bad_request("API key must be associated with an application")
        return tenant.application_id

    async def register(
        self, session: AsyncSession, scope: ApiKeyScope, data: dict[str, Any], ip_address: str | None = None
    ) -> User:
        tenant_id = self._require_tenant(scope)
        application_id = await self._resolve_application(session, scope, tenant_id)
        if not (data.get("email") or data.get("username")):
            raise ServiceError.bad_request("Either email or username must be provided")

        pending = self.verifier.issue()
        user = await self.users.create(
            session,
            **data,
            tenant_id=tenant_id,
            application_id=application_id,
            is_verified=False,
            email_verification_token=pending.token,
            email_verification_expires=pending.expires_at,
        )
        await audit_event(session, "register", "auth", user_id=user.id, tenant_id=tenant_id, ip_address=ip_address)
        return user

    async def login(
        self, session: AsyncSession, scope: ApiKeyScope, identifier: str, password: str, ip_address: str | None = None
    ) -> LoginResult:
        tenant_id = self._require_tenant(scope)
        user = await self.users.find_by_identifier(session, identifier, tenant_id)
        if user is None:
            # Equalize timing with the wrong-password path.
            await self.users.hasher.dummy_verify()
            await audit_event(session, "login_failed", "auth", tenant_id=tenant_id, ip_address=ip_address)
            raise ServiceError.unauthorized(INVALID_CREDENTIALS)

        if not await self.users.verify_password(password, user):
            await audit_event(
                session, "login_failed", "auth", user_id=user.id, tenant_id=tenant_id, ip_address=ip_address
            )
            raise ServiceError.unauthorized(INVALID_CREDENTIALS)

        if not user.is_verified:
            raise ServiceError.forbidden(NOT_VERIFIED)
        if user.status != UserStatus.active:
            raise ServiceError.forbidden(NOT_ACTIVE)

        await self.users.update_last_login(session, user)
        token = self.tokens.issue(user)
        roles = await self.users.roles_for(session, user.id)
        await audit_event(session, "login_success", "auth", user_id=user.id, tenant_id=tenant_id, ip_address=ip_address)
        return LoginResult(user=user, roles=roles, token=token)

    async def change_password(
        self,
        session: AsyncSession,
        scope: ApiKeyScope,
        user_id: uuid.UUID,
        current_password: str,
        new_password: str,
        ip_address: str | None = None,
    ) -> User:
        tenant_id = self._require_tenant(scope)
        user = await self.users.get_by_id(session, user_id)
        if user.tenant_id != tenant_id:
            logger.warning("cross-tenant password change refused for user id=%s", user_id)
            raise ServiceError.forbidden("User does not belong to the tenant associated with the API key")
        if not await self.users.verify_password(current_password, user):
            raise ServiceError.unauthorized("Invalid current password")

        await self.users.update(session, user, password=new_password)
        await audit_event(
            session, "password_changed", "auth", user_id=user.id, tenant_id=tenant_id, ip_address=ip_address
        )
        return user

    async def verify_email(self, session: AsyncSession, token: str, ip_address: str | None = None) -> User:
        user = await self.verifier.consume(session, token)
        await audit_event(
            session, "email_verified", "auth", user_id=user.id, tenant_id=user.tenant_id, ip_address=ip_address
        )
        return user

    async def verification_token(self, session: AsyncSession, scope: ApiKeyScope, email: str) -> User:
        tenant_id = self._require_tenant(scope)
        return await self.verifier.fetch_pending_token(session, email, tenant_id)

    async def resolve_session(self, session: AsyncSession, token: str) -> User:
        """Bearer token -> fresh, active, verified user.

        The user is re-read on every call so a suspended or deleted account
        loses access immediately instead of at token expiry.
        """
        claims = self.tokens.verify(token)
        user = await self.users.get_by_id(session, claims.id)
        if user.status != UserStatus.active:
            raise ServiceError.forbidden(NOT_ACTIVE)
        if not user.is_verified:
            raise ServiceError.forbidden(NOT_VERIFIED)
        return user

    async def roles_for(self, session: AsyncSession, user: User) -> list[Role]:
        return await self.users.roles_for(session, user.id)
