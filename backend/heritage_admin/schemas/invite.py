from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class InviteCreate(BaseModel):
    email: EmailStr
    tenant_id: Optional[UUID] = Field(default=None, description="Required for super_admin; ignored for county_admin")
    role: str = Field(default="county_admin", description="county_admin, editor or viewer")


class InviteOut(BaseModel):
    id: UUID
    tenant_id: UUID
    tenant_name: Optional[str] = None
    tenant_state: Optional[str] = None
    email: EmailStr
    role: str
    token: str
    expires_at: datetime
    used: bool
    used_at: Optional[datetime] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    # pending | used | expired
    status: str
    accept_url: str

    model_config = ConfigDict(from_attributes=True)
