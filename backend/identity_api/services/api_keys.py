import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_api.core.database import utcnow
from identity_api.core.errors import ServiceError
from identity_api.core.security import api_key_hash, generate_api_key
from identity_api.models.api_key import ApiKey, ApiKeyStatus
from identity_api.services.repository import Repository

logger = logging.getLogger(__name__)

INVALID_API_KEY = "Invalid API key"


@dataclass(frozen=True)
class ApiKeyScope:
    """Tenant/application binding established by a valid API key."""

    api_key_id: uuid.UUID
    tenant_id: uuid.UUID | None
    application_id: uuid.UUID | None


class ApiKeyService:
    def __init__(self, hash_secret: str, prefix: str = "sk_"):
        self._hash_secret = hash_secret
        self._prefix = prefix
        self.repo = Repository(ApiKey)

    def hash(self, raw_key: str) -> str:
        return api_key_hash(raw_key, self._hash_secret)

    async def create(
        self,
        session: AsyncSession,
        *,
        name: str,
        tenant_id: uuid.UUID | None = None,
        application_id: uuid.UUID | None = None,
        expires_at: datetime | None = None,
        status: ApiKeyStatus = ApiKeyStatus.active,
    ) -> tuple[ApiKey, str]:
        """Create a key. Returns the row and the raw key, which is never retrievable again."""
        if expires_at is not None and expires_at <= utcnow():
            raise ServiceError.bad_request("Expiration date must be in the future")
        raw_key = generate_api_key(self._prefix)
        row = await self.repo.create(
            session,
            name=name,
            prefix=raw_key[: len(self._prefix) + 8],
            key_hash=self.hash(raw_key),
            tenant_id=tenant_id,
            application_id=application_id,
            expires_at=expires_at,
            status=status,
        )
        await session.commit()
        logger.info("created api key id=%s prefix=%s tenant_id=%s", row.id, row.prefix, tenant_id)
        return row, raw_key

    async def get_by_key(self, session: AsyncSession, raw_key: str) -> ApiKey | None:
        return await self.repo.first(session, ApiKey.key_hash == self.hash(raw_key))

    async def authenticate(self, session: AsyncSession, raw_key: str) -> ApiKeyScope:
        """Resolve a presented key to its scope.

        Unknown, deleted, inactive and expired keys all fail with the same
        message; the reason is only logged.
        """
        row = await self.get_by_key(session, raw_key)
        if row is None:
            logger.warning("api key rejected: not found")
            raise ServiceError.unauthorized(INVALID_API_KEY)
        if row.status != ApiKeyStatus.active:
            logger.warning("api key rejected: inactive, key_id=%s", row.id)
            raise ServiceError.unauthorized(INVALID_API_KEY)
        if row.expires_at is not None and row.expires_at < utcnow():
            logger.warning("api key rejected: expired, key_id=%s", row.id)
            raise ServiceError.unauthorized(INVALID_API_KEY)
        return ApiKeyScope(api_key_id=row.id, tenant_id=row.tenant_id, application_id=row.application_id)

    async def touch(self, session_factory: async_sessionmaker[AsyncSession], key_id: uuid.UUID) -> None:
        """Record last use on a separate session. Never raises."""
        try:
            async with session_factory() as session:
                row = await self.repo.get(session, key_id)
                if row is None:
                    return
                await self.repo.update(session, row, last_used_at=utcnow())
                await session.commit()
        except Exception:
            logger.exception("failed to record last_used_at for api key %s", key_id)

    async def get_for_tenant(
        self, session: AsyncSession, key_id: uuid.UUID, tenant_id: uuid.UUID, include_deleted: bool = False
    ) -> ApiKey:
        row = await self.repo.get(session, key_id, include_deleted=include_deleted)
        if row is None or row.tenant_id != tenant_id:
            raise ServiceError.not_found("API key not found")
        return row

    async def list_for_tenant(
        self, session: AsyncSession, tenant_id: uuid.UUID, limit: int = 100, offset: int = 0
    ) -> list[ApiKey]:
        return await self.repo.find(session, ApiKey.tenant_id == tenant_id, limit=limit, offset=offset)

    async def update(
        self,
        session: AsyncSession,
        row: ApiKey,
        *,
        name: str | None = None,
        status: ApiKeyStatus | None = None,
    ) -> ApiKey:
        values = {}
        if name is not None:
            values["name"] = name
        if status is not None:
            values["status"] = status
        await self.repo.update(session, row, **values)
        await session.commit()
        return row

    async def soft_delete(self, session: AsyncSession, row: ApiKey) -> ApiKey:
        await self.repo.soft_delete(session, row)
        await session.commit()
        return row

    async def restore(self, session: AsyncSession, row: ApiKey) -> ApiKey:
        if row.deleted_at is None:
            raise ServiceError.not_found("Soft deleted API key not found")
        await self.repo.restore(session, row)
        await session.commit()
        return row
