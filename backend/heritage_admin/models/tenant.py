# backend/heritage_admin/models/tenant.py

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from heritage_admin.db.base import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True, index=True)

    # 2-letter US state code (IN, OH, ...)
    state: Mapped[str] = mapped_column(String(2), nullable=False)

    domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    branding: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Billing state mirrored from Stripe webhooks
    subscription_status: Mapped[str] = mapped_column(String(30), nullable=False, default="inactive")
    subscription_tier: Mapped[str] = mapped_column(String(30), nullable=False, default="standard")
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    subscription_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    subscription_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    trial_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
