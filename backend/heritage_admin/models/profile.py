# backend/heritage_admin/models/profile.py
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from heritage_admin.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the Supabase auth user (auth.users.id); never generated here.
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)

    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("tenants.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # super_admin | county_admin | editor | viewer
    role: Mapped[str] = mapped_column(String(30), nullable=False, default="viewer")

    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def display_name(self) -> Optional[str]:
        if self.full_name:
            return self.full_name
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or None
