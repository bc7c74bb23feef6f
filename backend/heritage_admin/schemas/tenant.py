from datetime import datetime
from typing import Optional
from uuid import UUID
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

STATE_REGEX = re.compile(r"^[A-Z]{2}$")
SLUG_REGEX = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def validate_state_code(v: str) -> str:
    if not STATE_REGEX.match(v or ""):
        raise ValueError("Invalid state code. Must be 2 uppercase letters (e.g., IN, OH)")
    return v


def validate_slug(v: str) -> str:
    v = (v or "").strip()
    if not SLUG_REGEX.match(v):
        raise ValueError("Slug must be lowercase letters, digits and single hyphens")
    return v


class TenantCreate(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    slug: str = Field(min_length=2, max_length=120)
    state: str

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return " ".join(v.strip().split())

    @field_validator("slug")
    @classmethod
    def check_slug(cls, v: str) -> str:
        return validate_slug(v)

    @field_validator("state")
    @classmethod
    def check_state(cls, v: str) -> str:
        return validate_state_code(v)


class TenantOut(BaseModel):
    id: UUID
    name: str
    slug: str
    state: str
    active: bool
    subscription_status: str
    subscription_tier: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TenantCreatedResponse(BaseModel):
    success: bool = True
    tenant: TenantOut


class TenantSummary(BaseModel):
    id: UUID
    name: str
    slug: str

    model_config = ConfigDict(from_attributes=True)


class TenantSubscriptionOut(BaseModel):
    tenant_id: UUID
    subscription_status: str
    subscription_tier: str
    stripe_customer_id: Optional[str] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
