from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from heritage_admin.core.roles import TicketPriority, TicketStatus


class SupportTicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=10000)
    priority: TicketPriority = TicketPriority.MEDIUM

    @field_validator("subject", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("This field is required")
        return v


class SupportTicketUpdate(BaseModel):
    status: TicketStatus
    admin_notes: Optional[str] = Field(default=None, max_length=10000)


class SupportTicketOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    tenant_id: Optional[uuid.UUID] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    subject: str
    description: str
    priority: str
    status: str
    admin_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SupportTicketStats(BaseModel):
    total: int
    open: int
    in_progress: int
    resolved: int
    closed: int
