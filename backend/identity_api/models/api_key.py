"""
API key model: binds a calling client to a tenant/application scope.

Raw keys are never stored. ``key_hash`` is an HMAC-SHA256 of the full key
and ``prefix`` keeps the first characters for identification in listings.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from identity_api.core.database import Base, SoftDeleteMixin


class ApiKeyStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"


class ApiKey(SoftDeleteMixin, Base):
    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    prefix: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    key_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)

    application_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("applications.id", ondelete="SET NULL"), index=True
    )
    tenant_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    status: Mapped[ApiKeyStatus] = mapped_column(
        Enum(ApiKeyStatus, native_enum=False), default=ApiKeyStatus.active, nullable=False
    )

    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<ApiKey id={self.id!s:.8} prefix={self.prefix!r} status={self.status.value if self.status else None}>"
