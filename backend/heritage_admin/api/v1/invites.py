# heritage_admin/api/v1/invites.py
from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.api.deps.tenant import require_roles
from heritage_admin.core.config import settings
from heritage_admin.core.dates import as_utc, utcnow
from heritage_admin.core.roles import INVITABLE_ROLES, ProfileRole
from heritage_admin.db.session import get_db
from heritage_admin.models.invite import Invite
from heritage_admin.models.profile import Profile
from heritage_admin.models.tenant import Tenant
from heritage_admin.schemas.invite import InviteCreate, InviteOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invites", tags=["invites"])

require_inviter = require_roles(ProfileRole.SUPER_ADMIN, ProfileRole.COUNTY_ADMIN)


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def normalize_email(email: str) -> str:
    return email.strip().lower()


def invite_status(invite: Invite) -> str:
    if invite.used:
        return "used"
    if as_utc(invite.expires_at) < utcnow():
        return "expired"
    return "pending"


def accept_url(token: str) -> str:
    return f"{settings.APP_URL}/auth/accept-invite?token={token}"


def _to_out(invite: Invite, tenant_name: Optional[str], tenant_state: Optional[str]) -> InviteOut:
    return InviteOut(
        id=invite.id,
        tenant_id=invite.tenant_id,
        tenant_name=tenant_name,
        tenant_state=tenant_state,
        email=invite.email,
        role=invite.role,
        token=invite.token,
        expires_at=invite.expires_at,
        used=invite.used,
        used_at=invite.used_at,
        created_by=invite.created_by,
        created_at=invite.created_at,
        status=invite_status(invite),
        accept_url=accept_url(invite.token),
    )


def _is_super_admin(profile: Profile) -> bool:
    return profile.role == ProfileRole.SUPER_ADMIN.value


async def _resolve_target_tenant(db: AsyncSession, profile: Profile, requested: Optional[uuid.UUID]) -> Tenant:
    """
    super_admin picks any tenant; county_admin always invites into their own.
    """
    if _is_super_admin(profile):
        tenant_id = requested or profile.tenant_id
        if tenant_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="tenant_id: This field is required")
    else:
        if profile.tenant_id is None:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No tenant assigned to your account")
        if requested is not None and requested != profile.tenant_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only invite users to your own organization",
            )
        tenant_id = profile.tenant_id

    tenant = await db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return tenant


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@router.post("", response_model=InviteOut, status_code=status.HTTP_201_CREATED)
async def create_invite(
    payload: InviteCreate,
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(require_inviter),
):
    role = (payload.role or ProfileRole.COUNTY_ADMIN.value).strip().lower()
    if role not in INVITABLE_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"role: must be one of {', '.join(sorted(INVITABLE_ROLES))}",
        )

    tenant = await _resolve_target_tenant(db, profile, payload.tenant_id)
    email = normalize_email(str(payload.email))

    pending_stmt = (
        select(Invite)
        .where(Invite.tenant_id == tenant.id)
        .where(Invite.email == email)
        .where(Invite.used.is_(False))
    )
    existing = (await db.execute(pending_stmt)).scalars().all()
    if any(invite_status(inv) == "pending" for inv in existing):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A pending invite already exists for this email",
        )

    inv = Invite(
        tenant_id=tenant.id,
        email=email,
        role=role,
        token=secrets.token_urlsafe(32),
        expires_at=utcnow() + timedelta(days=settings.INVITE_EXPIRY_DAYS),
        used=False,
        created_by=profile.id,
    )
    db.add(inv)
    await db.commit()
    await db.refresh(inv)

    logger.info("Invite %s created for %s into tenant %s by %s", inv.id, email, tenant.id, profile.id)
    return _to_out(inv, tenant.name, tenant.state)


@router.get("", response_model=List[InviteOut])
async def list_invites(
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(require_inviter),
):
    stmt = (
        select(Invite, Tenant.name, Tenant.state)
        .join(Tenant, Tenant.id == Invite.tenant_id)
        .order_by(Invite.created_at.desc())
    )
    if not _is_super_admin(profile):
        if profile.tenant_id is None:
            return []
        stmt = stmt.where(Invite.tenant_id == profile.tenant_id)

    res = await db.execute(stmt)
    return [_to_out(inv, name, state) for inv, name, state in res.all()]


@router.delete("/{invite_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invite(
    invite_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(require_inviter),
):
    stmt = select(Invite).where(Invite.id == invite_id)
    if not _is_super_admin(profile):
        stmt = stmt.where(Invite.tenant_id == profile.tenant_id)
    inv = (await db.execute(stmt)).scalar_one_or_none()

    if not inv:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invite not found")

    await db.delete(inv)
    await db.commit()
    return None
