# backend/heritage_admin/schemas/auth.py
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from heritage_admin.schemas.tenant import TenantSummary, validate_slug, validate_state_code

MIN_PASSWORD_LENGTH = 8


def _normalize_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = " ".join(value.strip().split())
    return v or None


def _require_name(value: str) -> str:
    v = _normalize_name(value)
    if not v:
        raise ValueError("This field is required")
    return v


def _check_password(value: str) -> str:
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return value


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    user_id: str


class PasswordResetRequest(BaseModel):
    email: EmailStr


class RegisterRequest(BaseModel):
    organization_name: str = Field(min_length=2, max_length=200)
    slug: str = Field(min_length=2, max_length=120)
    state: str
    full_name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str

    @field_validator("organization_name", "full_name")
    @classmethod
    def names(cls, v: str) -> str:
        return _require_name(v)

    @field_validator("slug")
    @classmethod
    def check_slug(cls, v: str) -> str:
        return validate_slug(v)

    @field_validator("state")
    @classmethod
    def check_state(cls, v: str) -> str:
        return validate_state_code(v)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return str(v).strip().lower()

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _check_password(v)


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    tenant: TenantSummary


class InviteLookupOut(BaseModel):
    email: EmailStr
    role: str
    tenant_id: UUID
    tenant_name: str
    expires_at: datetime


class AcceptInviteRequest(BaseModel):
    token: str = Field(min_length=1)
    full_name: str = Field(min_length=1, max_length=200)
    password: str

    @field_validator("full_name")
    @classmethod
    def name(cls, v: str) -> str:
        return _require_name(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _check_password(v)


class AcceptInviteResponse(BaseModel):
    status: str = "ok"
    user_id: str
    tenant_id: str
    role: str


class MeResponse(BaseModel):
    id: UUID
    email: Optional[str] = None
    role: str
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    tenant: Optional[TenantSummary] = None


class AccountUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Allow null to clear; whitespace-only strings normalize to None
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    full_name: Optional[str] = Field(default=None, max_length=200)

    @field_validator("first_name", "last_name", "full_name")
    @classmethod
    def normalize(cls, v: Optional[str]) -> Optional[str]:
        return _normalize_name(v)
