import logging
import uuid
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.core.database import utcnow
from identity_api.core.errors import ServiceError
from identity_api.core.security import PasswordHasher
from identity_api.models.role import Role, UserRole
from identity_api.models.user import User
from identity_api.services.repository import Repository

logger = logging.getLogger(__name__)

DUPLICATE_IDENTITY = "Email or username already exists"


class UserService:
    """User persistence with password hashing and uniqueness checks."""

    def __init__(self, hasher: PasswordHasher):
        self.hasher = hasher
        self.repo = Repository(User)

    async def get_by_id(self, session: AsyncSession, user_id: uuid.UUID) -> User:
        user = await self.repo.get(session, user_id)
        if user is None:
            raise ServiceError.not_found("User not found")
        return user

    async def _ensure_unique(
        self,
        session: AsyncSession,
        email: str | None,
        username: str | None,
        exclude_id: uuid.UUID | None = None,
    ) -> None:
        # Friendly pre-check; the partial unique indexes are authoritative.
        extra = [User.id != exclude_id] if exclude_id else []
        if email and await self.repo.first(session, func.lower(User.email) == email.lower(), *extra):
            raise ServiceError.bad_request("Email already exists")
        if username and await self.repo.first(session, func.lower(User.username) == username.lower(), *extra):
            raise ServiceError.bad_request("Username already exists")

    async def _commit(self, session: AsyncSession) -> None:
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info("user write rejected by unique constraint")
            raise ServiceError.bad_request(DUPLICATE_IDENTITY)

    async def create(
        self,
        session: AsyncSession,
        *,
        password: str,
        email: str | None = None,
        username: str | None = None,
        **values: Any,
    ) -> User:
        if not password:
            raise ServiceError.bad_request("Password is required")
        await self._ensure_unique(session, email, username)

        password_hash = await self.hasher.hash(password)
        user = await self.repo.create(session, email=email, username=username, password_hash=password_hash, **values)
        await self._commit(session)
        logger.info("created user id=%s tenant_id=%s", user.id, user.tenant_id)
        return user

    async def update(
        self,
        session: AsyncSession,
        user: User,
        *,
        password: str | None = None,
        email: str | None = None,
        username: str | None = None,
        **values: Any,
    ) -> User:
        await self._ensure_unique(session, email, username, exclude_id=user.id)
        if password:
            values["password_hash"] = await self.hasher.hash(password)
        if email:
            values["email"] = email
        if username:
            values["username"] = username
        await self.repo.update(session, user, **values)
        await self._commit(session)
        return user

    async def find_by_identifier(self, session: AsyncSession, identifier: str, tenant_id: uuid.UUID) -> User | None:
        if not identifier or not tenant_id:
            return None
        ident = identifier.strip().lower()
        return await self.repo.first(
            session,
            User.tenant_id == tenant_id,
            or_(func.lower(User.email) == ident, func.lower(User.username) == ident),
        )

    async def find_by_email(self, session: AsyncSession, email: str, tenant_id: uuid.UUID) -> User | None:
        return await self.repo.first(
            session,
            User.tenant_id == tenant_id,
            func.lower(User.email) == email.strip().lower(),
        )

    async def find_by_verification_token(self, session: AsyncSession, token: str) -> User | None:
        return await self.repo.first(session, User.email_verification_token == token)

    async def verify_password(self, plaintext: str, user: User) -> bool:
        return await self.hasher.verify(plaintext, user.password_hash)

    async def update_last_login(self, session: AsyncSession, user: User) -> User:
        return await self.update(session, user, last_login_at=utcnow())

    async def roles_for(self, session: AsyncSession, user_id: uuid.UUID) -> list[Role]:
        stmt = (
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id, Role.deleted_at.is_(None))
            .order_by(Role.name)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def soft_delete(self, session: AsyncSession, user_id: uuid.UUID) -> User:
        user = await self.get_by_id(session, user_id)
        await self.repo.soft_delete(session, user)
        await session.commit()
        return user

    async def restore(self, session: AsyncSession, user_id: uuid.UUID) -> User:
        user = await self.repo.get(session, user_id, include_deleted=True)
        if user is None or user.deleted_at is None:
            raise ServiceError.not_found("Soft deleted user not found")
        await self.repo.restore(session, user)
        # Restoring can collide with a live row that took the same email/username.
        await self._commit(session)
        return user
