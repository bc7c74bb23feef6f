# heritage_admin/api/v1/tenants.py
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.api.deps.tenant import require_super_admin
from heritage_admin.crud.tenants import get_tenant_by_slug, insert_tenant
from heritage_admin.db.session import get_db
from heritage_admin.models.profile import Profile
from heritage_admin.models.tenant import Tenant
from heritage_admin.schemas.tenant import TenantCreate, TenantCreatedResponse, TenantOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/tenants", tags=["admin"])

DUPLICATE_SLUG_DETAIL = "A tenant with this slug already exists"


@router.post("", response_model=TenantCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    payload: TenantCreate,
    db: AsyncSession = Depends(get_db),
    admin: Profile = Depends(require_super_admin),
):
    """
    Platform operator creates a historical society by hand.
    The slug check runs before any write.
    """
    if await get_tenant_by_slug(db, payload.slug) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=DUPLICATE_SLUG_DETAIL,
        )

    try:
        tenant = await insert_tenant(db, name=payload.name, slug=payload.slug, state=payload.state)
    except IntegrityError:
        # Lost a race with another insert of the same slug
        await db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_SLUG_DETAIL)
    except SQLAlchemyError as exc:
        await db.rollback()
        message = str(getattr(exc, "orig", None) or exc)
        logger.error("Tenant insert failed for slug=%s: %s", payload.slug, message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database error: {message}",
        )

    logger.info("Tenant %s (%s) created by %s", tenant.id, tenant.slug, admin.id)
    return TenantCreatedResponse(tenant=TenantOut.model_validate(tenant))


@router.get("", response_model=List[TenantOut])
async def list_tenants(
    db: AsyncSession = Depends(get_db),
    _admin: Profile = Depends(require_super_admin),
):
    stmt = select(Tenant).order_by(Tenant.state.asc(), Tenant.name.asc())
    res = await db.execute(stmt)
    return list(res.scalars().all())
