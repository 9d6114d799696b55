import uuid
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from identity_api.models.user import UserStatus

T = TypeVar("T")

USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T
    message: str | None = None


class RegisterRequest(BaseModel):
    email: EmailStr | None = None
    username: str | None = Field(default=None, min_length=1, max_length=100, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=8, max_length=255)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    status: UserStatus = UserStatus.active

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if len(value) > 255:
                raise ValueError("Email must be less than 255 characters")
            return value or None
        return value

    @field_validator("username", "first_name", "last_name", mode="before")
    @classmethod
    def _strip_names(cls, value):
        return _strip(value)

    @model_validator(mode="after")
    def _email_or_username(self):
        if not (self.email or self.username):
            raise ValueError("Either email or username must be provided")
        return self


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("identifier", mode="before")
    @classmethod
    def _strip_identifier(cls, value):
        return _strip(value)


class ChangePasswordRequest(BaseModel):
    user_id: uuid.UUID
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=255)


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)


class RoleSummary(BaseModel):
    id: uuid.UUID
    name: str

    class Config:
        from_attributes = True


class UserProfile(BaseModel):
    """Fields every outbound user carries. Never the hash or the verification token."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    application_id: uuid.UUID
    email: str | None
    username: str | None
    first_name: str
    last_name: str
    status: UserStatus
    is_verified: bool
    email_verification_expires: datetime | None = None
    last_login_at: datetime | None = None

    class Config:
        from_attributes = True


class UserResponse(UserProfile):
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None


class LoginUserResponse(UserProfile):
    roles: list[RoleSummary] = Field(default_factory=list)


class MeResponse(UserResponse):
    roles: list[RoleSummary] = Field(default_factory=list)


class LoginEnvelope(Envelope[LoginUserResponse]):
    token: str


class VerificationTokenResponse(BaseModel):
    id: uuid.UUID
    email: str | None
    is_verified: bool
    email_verification_token: str | None
    email_verification_expires: datetime | None

    class Config:
        from_attributes = True
