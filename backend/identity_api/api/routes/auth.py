from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from identity_api.core.database import get_db
from identity_api.core.deps import client_ip, get_current_user, get_services, require_api_key
from identity_api.core.rate_limit import LOGIN_LIMIT, REGISTER_LIMIT, limiter
from identity_api.models.user import User
from identity_api.schemas.auth import (
    ChangePasswordRequest,
    Envelope,
    LoginEnvelope,
    LoginRequest,
    LoginUserResponse,
    MeResponse,
    RegisterRequest,
    RoleSummary,
    UserResponse,
    VerificationTokenResponse,
    VerifyEmailRequest,
)
from identity_api.services.api_keys import ApiKeyScope
from identity_api.services.container import Services

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=Envelope[UserResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(REGISTER_LIMIT)
async def register(
    request: Request,
    payload: RegisterRequest,
    scope: ApiKeyScope = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user = await services.auth.register(db, scope, payload.model_dump(), ip_address=client_ip(request))
    return Envelope(data=UserResponse.model_validate(user), message="User registered successfully")


@router.post("/login", response_model=LoginEnvelope)
@limiter.limit(LOGIN_LIMIT)
async def login(
    request: Request,
    payload: LoginRequest,
    scope: ApiKeyScope = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    result = await services.auth.login(
        db, scope, payload.identifier, payload.password, ip_address=client_ip(request)
    )
    data = LoginUserResponse.model_validate(result.user).model_copy(
        update={"roles": [RoleSummary.model_validate(r) for r in result.roles]}
    )
    return LoginEnvelope(data=data, token=result.token, message="Login successful")


@router.get("/me", response_model=Envelope[MeResponse])
async def me(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    roles = await services.auth.roles_for(db, current_user)
    data = MeResponse.model_validate(current_user).model_copy(
        update={"roles": [RoleSummary.model_validate(r) for r in roles]}
    )
    return Envelope(data=data, message="Token is valid")


@router.post("/change-password", response_model=Envelope[UserResponse])
async def change_password(
    request: Request,
    payload: ChangePasswordRequest,
    scope: ApiKeyScope = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user = await services.auth.change_password(
        db,
        scope,
        payload.user_id,
        payload.current_password,
        payload.new_password,
        ip_address=client_ip(request),
    )
    return Envelope(data=UserResponse.model_validate(user), message="Password changed successfully")


@router.post("/verify-email", response_model=Envelope[UserResponse])
async def verify_email(
    request: Request,
    payload: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user = await services.auth.verify_email(db, payload.token, ip_address=client_ip(request))
    return Envelope(data=UserResponse.model_validate(user), message="Email verified successfully")


@router.get("/verification-token/{email}", response_model=Envelope[VerificationTokenResponse])
async def verification_token(
    email: str,
    scope: ApiKeyScope = Depends(require_api_key),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
):
    user = await services.auth.verification_token(db, scope, email)
    return Envelope(data=VerificationTokenResponse.model_validate(user))
