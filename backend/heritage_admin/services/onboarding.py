"""
Tenant onboarding flows that span the database and the identity provider.

Neither flow can run inside one transaction: the auth user lives in Supabase
Auth, the tenant and profile in Postgres. Each later-step failure undoes the
earlier steps with compensating deletes. Compensations run independently of
each other and every failure is logged, so an operator can clean up anything
left behind.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.core.config import settings
from heritage_admin.core.dates import as_utc, utcnow
from heritage_admin.core.errors import IdentityProviderError
from heritage_admin.core.roles import ProfileRole
from heritage_admin.crud.tenants import delete_tenant, get_tenant_by_slug, insert_tenant
from heritage_admin.models.invite import Invite
from heritage_admin.models.profile import Profile
from heritage_admin.models.tenant import Tenant
from heritage_admin.schemas.auth import AcceptInviteRequest, RegisterRequest
from heritage_admin.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

DUPLICATE_ORGANIZATION_DETAIL = "An organization with this name already exists. Please choose a different name."


def _db_message(exc: SQLAlchemyError) -> str:
    return str(getattr(exc, "orig", None) or exc)


async def upsert_profile(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    role: str,
    full_name: str,
    email: str,
) -> Profile:
    """
    Insert the profile, or update it when a database trigger on auth.users
    already created one. Flushes; the caller commits.
    """
    profile = await db.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id)
        db.add(profile)
    profile.tenant_id = tenant_id
    profile.role = role
    profile.full_name = full_name
    profile.email = email
    await db.flush()
    return profile


async def _undo_registration(
    db: AsyncSession,
    identity: IdentityProvider,
    *,
    tenant_id: Optional[uuid.UUID],
    user_id: Optional[str],
) -> list[str]:
    failures: list[str] = []

    if user_id is not None:
        try:
            await identity.delete_user(user_id)
            logger.info("Rollback: deleted auth user %s", user_id)
        except IdentityProviderError as exc:
            logger.error("Rollback failed: could not delete auth user %s: %s", user_id, exc.message)
            failures.append(f"user:{user_id}")

    if tenant_id is not None:
        try:
            await delete_tenant(db, tenant_id)
            logger.info("Rollback: deleted tenant %s", tenant_id)
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error("Rollback failed: could not delete tenant %s: %s", tenant_id, _db_message(exc))
            failures.append(f"tenant:{tenant_id}")

    return failures


async def register_organization(
    db: AsyncSession,
    identity: IdentityProvider,
    payload: RegisterRequest,
) -> Tenant:
    """
    Self-registration: tenant -> auth user -> confirmation email -> profile.
    Conflicts are detected before the first write.
    """
    if await get_tenant_by_slug(db, payload.slug) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=DUPLICATE_ORGANIZATION_DETAIL,
        )

    if await identity.find_user_by_email(payload.email) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    # Step 1: tenant
    try:
        tenant = await insert_tenant(db, name=payload.organization_name, slug=payload.slug, state=payload.state)
    except IntegrityError:
        await db.rollback()
        logger.info("Registration: slug %s was taken concurrently", payload.slug)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=DUPLICATE_ORGANIZATION_DETAIL)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Registration: tenant insert failed for slug=%s: %s", payload.slug, _db_message(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create organization",
        )
    tenant_id = tenant.id
    logger.info("Registration: created tenant %s (%s)", tenant_id, payload.slug)

    # Step 2: auth user (unconfirmed until the email link is followed)
    try:
        user = await identity.create_user(
            payload.email,
            payload.password,
            email_confirm=False,
            full_name=payload.full_name,
        )
    except IdentityProviderError as exc:
        logger.error("Registration: user creation failed for tenant %s: %s", tenant_id, exc.message)
        await _undo_registration(db, identity, tenant_id=tenant_id, user_id=None)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create user account: {exc.message}",
        )
    logger.info("Registration: created auth user %s", user.id)

    # Step 3: confirmation email; the user can ask for another one later
    try:
        await identity.send_confirmation_email(payload.email, f"{settings.APP_URL}/auth/callback")
    except IdentityProviderError as exc:
        logger.warning("Registration: confirmation email to %s failed: %s", payload.email, exc.message)

    # Step 4: profile
    try:
        await upsert_profile(
            db,
            user_id=uuid.UUID(user.id),
            tenant_id=tenant_id,
            role=ProfileRole.COUNTY_ADMIN.value,
            full_name=payload.full_name,
            email=payload.email,
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        message = _db_message(exc)
        logger.error("Registration: profile write failed for user %s: %s", user.id, message)
        await _undo_registration(db, identity, tenant_id=tenant_id, user_id=user.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create user profile: {message}",
        )

    await db.refresh(tenant)
    return tenant


async def load_open_invite(db: AsyncSession, token: str, *, lock: bool = False) -> Invite:
    token = (token or "").strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invite not found")

    stmt = select(Invite).where(Invite.token == token)
    if lock:
        stmt = stmt.with_for_update()
    invite = (await db.execute(stmt)).scalar_one_or_none()

    if invite is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invite not found")
    if invite.used:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="This invite has already been used")
    if as_utc(invite.expires_at) < utcnow():
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="This invite has expired")
    return invite


async def accept_invite(
    db: AsyncSession,
    identity: IdentityProvider,
    payload: AcceptInviteRequest,
) -> tuple[Invite, Profile]:
    """
    Create the invited account and attach it to the invite's tenant.
    The invite is single-use: it is marked used in the same commit as the profile.
    """
    invite = await load_open_invite(db, payload.token, lock=True)
    invite_id = invite.id
    email = invite.email.strip().lower()

    if await identity.find_user_by_email(email) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists. Sign in instead.",
        )

    # Following the invite link proves ownership of the address.
    user = await identity.create_user(email, payload.password, email_confirm=True, full_name=payload.full_name)

    try:
        profile = await upsert_profile(
            db,
            user_id=uuid.UUID(user.id),
            tenant_id=invite.tenant_id,
            role=invite.role,
            full_name=payload.full_name,
            email=email,
        )
        invite.used = True
        invite.used_at = utcnow()
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        message = _db_message(exc)
        logger.error("Invite %s: profile write failed for user %s: %s", invite_id, user.id, message)
        await _undo_registration(db, identity, tenant_id=None, user_id=user.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Account created but profile update failed",
        )

    logger.info("Invite %s accepted by user %s", invite_id, user.id)
    return invite, profile
