import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from identity_api.models.api_key import ApiKeyStatus


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ApiKeyCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    expires_at: datetime | None = None
    status: ApiKeyStatus = ApiKeyStatus.active

    @field_validator("expires_at")
    @classmethod
    def _expires_utc(cls, value):
        return _naive_utc(value)


class ApiKeyUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    status: ApiKeyStatus | None = None


class ApiKeyResponse(BaseModel):
    id: uuid.UUID
    name: str
    prefix: str
    tenant_id: uuid.UUID | None
    application_id: uuid.UUID | None
    status: ApiKeyStatus
    expires_at: datetime | None
    last_used_at: datetime | None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    class Config:
        from_attributes = True


class ApiKeyCreateResponse(ApiKeyResponse):
    # Only ever returned here, once.
    key: str
