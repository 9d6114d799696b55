import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.core.database import get_db
from identity_api.core.deps import client_ip, get_services, require_api_key, require_tenant_member
from identity_api.models.user import User
from identity_api.schemas.api_key import (
    ApiKeyCreateRequest,
    ApiKeyCreateResponse,
    ApiKeyResponse,
    ApiKeyUpdateRequest,
)
from identity_api.schemas.auth import Envelope
from identity_api.services.api_keys import ApiKeyScope
from identity_api.services.audit import audit_event
from identity_api.services.container import Services

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


@router.get("", response_model=Envelope[list[ApiKeyResponse]])
async def list_keys(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(require_tenant_member),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    rows = await services.api_keys.list_for_tenant(db, current_user.tenant_id, limit=limit, offset=offset)
    return Envelope(data=[ApiKeyResponse.model_validate(r) for r in rows])


@router.post("", response_model=Envelope[ApiKeyCreateResponse], status_code=status.HTTP_201_CREATED)
async def create_key(
    request: Request,
    payload: ApiKeyCreateRequest,
    scope: ApiKeyScope = Depends(require_api_key),
    current_user: User = Depends(require_tenant_member),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    row, raw_key = await services.api_keys.create(
        db,
        name=payload.name,
        tenant_id=current_user.tenant_id,
        application_id=scope.application_id or current_user.application_id,
        expires_at=payload.expires_at,
        status=payload.status,
    )
    await audit_event(
        db,
        "api_key_create",
        "api_key",
        user_id=current_user.id,
        tenant_id=current_user.tenant_id,
        ip_address=client_ip(request),
        details=f"key_id={row.id}",
    )
    data = ApiKeyCreateResponse(**ApiKeyResponse.model_validate(row).model_dump(), key=raw_key)
    return Envelope(data=data, message="API key created. Store it now; it will not be shown again.")


@router.get("/{key_id}", response_model=Envelope[ApiKeyResponse])
async def get_key(
    key_id: uuid.UUID,
    current_user: User = Depends(require_tenant_member),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    row = await services.api_keys.get_for_tenant(db, key_id, current_user.tenant_id)
    return Envelope(data=ApiKeyResponse.model_validate(row))


@router.patch("/{key_id}", response_model=Envelope[ApiKeyResponse])
async def update_key(
    key_id: uuid.UUID,
    payload: ApiKeyUpdateRequest,
    current_user: User = Depends(require_tenant_member),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    row = await services.api_keys.get_for_tenant(db, key_id, current_user.tenant_id)
    row = await services.api_keys.update(db, row, name=payload.name, status=payload.status)
    await audit_event(
        db,
        "api_key_update",
        "api_key",
        user_id=current_user.id,
        tenant_id=current_user.tenant_id,
        details=f"key_id={row.id}",
    )
    return Envelope(data=ApiKeyResponse.model_validate(row), message="API key updated")


@router.delete("/{key_id}", response_model=Envelope[ApiKeyResponse])
async def delete_key(
    key_id: uuid.UUID,
    current_user: User = Depends(require_tenant_member),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    row = await services.api_keys.get_for_tenant(db, key_id, current_user.tenant_id)
    row = await services.api_keys.soft_delete(db, row)
    await audit_event(
        db,
        "api_key_delete",
        "api_key",
        user_id=current_user.id,
        tenant_id=current_user.tenant_id,
        details=f"key_id={row.id}",
    )
    return Envelope(data=ApiKeyResponse.model_validate(row), message="API key deleted")


@router.post("/{key_id}/restore", response_model=Envelope[ApiKeyResponse])
async def restore_key(
    key_id: uuid.UUID,
    current_user: User = Depends(require_tenant_member),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    row = await services.api_keys.get_for_tenant(db, key_id, current_user.tenant_id, include_deleted=True)
    row = await services.api_keys.restore(db, row)
    await audit_event(
        db,
        "api_key_restore",
        "api_key",
        user_id=current_user.id,
        tenant_id=current_user.tenant_id,
        details=f"key_id={row.id}",
    )
    return Envelope(data=ApiKeyResponse.model_validate(row), message="API key restored")
