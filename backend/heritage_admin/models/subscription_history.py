import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from heritage_admin.db.base import Base


class SubscriptionHistory(Base):
    """Append-only log of billing events applied to a tenant."""

    __tablename__ = "subscription_history"
    __table_args__ = (
        UniqueConstraint("stripe_event_id", name="uq_subscription_history_stripe_event_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(String(30), nullable=False)
    stripe_event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    stripe_event_type: Mapped[str] = mapped_column(String(80), nullable=False)

    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
