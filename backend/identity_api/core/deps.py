from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.core.database import get_db
from identity_api.core.errors import ServiceError
from identity_api.models.user import User
from identity_api.schemas.auth import UserResponse
from identity_api.services.api_keys import ApiKeyScope
from identity_api.services.container import Services

MISSING_API_KEY = (
    "API key is required. Provide it via X-API-Key header, "
    "Authorization: ApiKey <key> header, or api_key query parameter"
)
MISSING_BEARER = "Authorization header with Bearer token is required"


def get_services(request: Request) -> Services:
    return request.app.state.services


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _scheme_credentials(header: str | None, scheme: str) -> str | None:
    if not header:
        return None
    parts = header.strip().split(" ", maxsplit=1)
    if len(parts) != 2 or parts[0].lower() != scheme:
        return None
    return parts[1].strip() or None


def extract_api_key(request: Request) -> str | None:
    # Precedence: dedicated header, then "Authorization: ApiKey", then query string.
    candidates = (
        request.headers.get("x-api-key"),
        _scheme_credentials(request.headers.get("authorization"), "apikey"),
        request.query_params.get("api_key"),
    )
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return None


async def require_api_key(
    request: Request,
    session: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
) -> ApiKeyScope:
    """Gate for every API route: resolves the caller's tenant/application scope."""
    raw_key = extract_api_key(request)
    if not raw_key:
        raise ServiceError.unauthorized(MISSING_API_KEY)

    scope = await services.api_keys.authenticate(session, raw_key)
    request.state.api_key_scope = scope
    # Counts as use whatever the handler goes on to return.
    await services.api_keys.touch(request.app.state.session_factory, scope.api_key_id)
    return scope


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
) -> User:
    token = _scheme_credentials(request.headers.get("authorization"), "bearer")
    if not token:
        raise ServiceError.unauthorized(MISSING_BEARER)

    user = await services.auth.resolve_session(session, token)
    request.state.current_user = UserResponse.model_validate(user)
    return user


async def require_tenant_member(
    current_user: User = Depends(get_current_user),
    scope: ApiKeyScope = Depends(require_api_key),
) -> User:
    if scope.tenant_id is None or current_user.tenant_id != scope.tenant_id:
        raise ServiceError.forbidden("User does not belong to the tenant associated with the API key")
    return current_user
