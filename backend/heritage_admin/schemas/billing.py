from __future__ import annotations

from datetime import datetime
from typing import Any, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from heritage_admin.schemas.tenant import TenantSubscriptionOut


class CheckoutSessionCreate(BaseModel):
    plan: Optional[Literal["monthly", "yearly"]] = None
    price_id: Optional[str] = Field(default=None, min_length=1)
    tenant_id: Optional[UUID] = Field(default=None, description="super_admin only")

    @model_validator(mode="after")
    def plan_or_price(self) -> "CheckoutSessionCreate":
        if not self.plan and not self.price_id:
            raise ValueError("Provide a plan (monthly or yearly) or a price_id")
        return self


class CheckoutSessionOut(BaseModel):
    sessionId: str
    url: Optional[str] = None


class PortalSessionCreate(BaseModel):
    tenant_id: Optional[UUID] = Field(default=None, description="super_admin only")


class PortalSessionOut(BaseModel):
    url: str


class PlanOut(BaseModel):
    key: str
    price: int
    period: str
    price_id: Optional[str] = None
    savings: Optional[str] = None


class SubscriptionHistoryOut(BaseModel):
    id: UUID
    status: str
    stripe_event_id: str
    stripe_event_type: str
    event_metadata: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionOverview(BaseModel):
    subscription: TenantSubscriptionOut
    plans: List[PlanOut]
    features: List[str]
    history: List[SubscriptionHistoryOut]
