"""
API request and response models for SegreGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Response fields use the camelCase names the browser client expects
(accessToken, createdAt); serialize with model_dump(by_alias=True).
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import Credential

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    volunteer = "volunteer"
    admin = "admin"


# ---------------------------------------------------------------------------
# Request models
#
# name and email are trimmed before validation. Passwords are taken exactly as
# typed: leading and trailing spaces are part of the secret.
# ---------------------------------------------------------------------------


def _trim(value):
    return value.strip() if isinstance(value, str) else value


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value):
        return _trim(value)


class SignupRequest(BaseModel):
    """Request body for POST /api/auth/signup.

    role is accepted for form compatibility but never honoured -- the store's
    register_user() always assigns "user".
    """

    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8, max_length=255)
    role: Optional[RoleEnum] = None

    @field_validator("name", "email", mode="before")
    @classmethod
    def strip_name_and_email(cls, value):
        return _trim(value)


class AdminUserCreate(BaseModel):
    """Request body for POST /api/admin/users. Any role may be assigned."""

    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8, max_length=255)
    role: RoleEnum = RoleEnum.user

    @field_validator("name", "email", mode="before")
    @classmethod
    def strip_name_and_email(cls, value):
        return _trim(value)


class RoleUpdate(BaseModel):
    """Request body for PATCH /api/admin/users/{id}/role."""

    role: RoleEnum


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a credential. Never includes the password hash."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str
    email: str
    role: str
    created_at: Optional[str] = Field(default=None, serialization_alias="createdAt")

    @classmethod
    def from_credential(cls, credential: Credential) -> "UserResponse":
        return cls(
            id=credential.id,
            name=credential.name,
            email=credential.email,
            role=credential.role,
            created_at=credential.created_at,
        )


class AuthPayload(BaseModel):
    """data field of login and refresh responses."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(serialization_alias="accessToken")
    user: UserResponse


class IdentityResponse(BaseModel):
    """data field of GET /api/users/me."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: int = Field(serialization_alias="userId")
    email: str
    role: str
    permissions: list[str]


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int = Field(serialization_alias="totalPages")


class UserPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[UserResponse]
    pagination: Pagination


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "healthy"
    version: str
    components: dict[str, str]
