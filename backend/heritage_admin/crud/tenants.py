# heritage_admin/crud/tenants.py
from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.models.tenant import Tenant


async def get_tenant_by_slug(db: AsyncSession, slug: str) -> Optional[Tenant]:
    stmt = select(Tenant).where(Tenant.slug == slug).limit(1)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_tenant_by_customer_id(db: AsyncSession, customer_id: str) -> Optional[Tenant]:
    stmt = select(Tenant).where(Tenant.stripe_customer_id == customer_id).limit(1)
    return (await db.execute(stmt)).scalar_one_or_none()


async def insert_tenant(db: AsyncSession, *, name: str, slug: str, state: str) -> Tenant:
    """
    New tenants start active, unsubscribed, on the standard tier.
    Commits so later steps of a multi-step flow can see (and compensate) the row.
    """
    tenant = Tenant(
        name=name,
        slug=slug,
        state=state,
        active=True,
        subscription_status="inactive",
        subscription_tier="standard",
    )
    db.add(tenant)
    await db.commit()
    await db.refresh(tenant)
    return tenant


async def delete_tenant(db: AsyncSession, tenant_id: uuid.UUID) -> None:
    await db.execute(delete(Tenant).where(Tenant.id == tenant_id))
    await db.commit()
