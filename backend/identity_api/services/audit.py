import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.models.audit import AuditLog

logger = logging.getLogger(__name__)


async def audit_event(
    session: AsyncSession,
    action: str,
    resource: str,
    user_id: uuid.UUID | None = None,
    tenant_id: uuid.UUID | None = None,
    ip_address: str | None = None,
    details: str | None = None,
) -> None:
    entry = AuditLog(
        user_id=user_id,
        tenant_id=tenant_id,
        action=action,
        resource=resource,
        ip_address=ip_address,
        details=details,
    )
    session.add(entry)
    await session.commit()
    logger.info("audit action=%s resource=%s user_id=%s tenant_id=%s", action, resource, user_id, tenant_id)
