# backend/heritage_admin/api/v1/auth.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.api.deps.services import get_identity_provider
from heritage_admin.core.config import settings
from heritage_admin.core.errors import IdentityProviderError
from heritage_admin.core.security import bearer_scheme, decode_access_token
from heritage_admin.db.session import get_db
from heritage_admin.models.profile import Profile
from heritage_admin.models.tenant import Tenant
from heritage_admin.schemas.auth import (
    AcceptInviteRequest,
    AcceptInviteResponse,
    InviteLookupOut,
    MeResponse,
    PasswordResetRequest,
    RegisterRequest,
    RegisterResponse,
    SignInRequest,
    TokenResponse,
)
from heritage_admin.schemas.tenant import TenantSummary
from heritage_admin.services import onboarding
from heritage_admin.services.identity import IdentityProvider, InvalidCredentials

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    sb_access_token: Optional[str] = Cookie(default=None, alias="sb-access-token"),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """
    Dependency for protected endpoints.
    Bearer header first; the dashboard's `sb-access-token` cookie as fallback.
    """
    token = credentials.credentials if credentials is not None else sb_access_token
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    claims = decode_access_token(token)

    try:
        user_uuid = uuid.UUID(claims.user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")

    profile = await db.get(Profile, user_uuid)
    if not profile:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    # Profiles created before the email column existed
    if not profile.email and claims.email:
        profile.email = claims.email

    return profile


async def build_me_response(db: AsyncSession, profile: Profile) -> MeResponse:
    tenant = await db.get(Tenant, profile.tenant_id) if profile.tenant_id else None
    return MeResponse(
        id=profile.id,
        email=profile.email,
        role=profile.role,
        full_name=profile.full_name,
        first_name=profile.first_name,
        last_name=profile.last_name,
        tenant=TenantSummary.model_validate(tenant) if tenant else None,
    )


@router.post("/signin", response_model=TokenResponse)
async def sign_in(
    payload: SignInRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
) -> TokenResponse:
    """
    Body: {"email": "...", "password": "..."}
    Password check happens at the identity provider; we only relay its session.
    """
    try:
        session = await identity.sign_in(str(payload.email).strip().lower(), payload.password)
    except InvalidCredentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    return TokenResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        user_id=session.user_id,
    )


@router.get("/me", response_model=MeResponse)
async def me(
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(get_current_user),
) -> MeResponse:
    return await build_me_response(db, profile)


@router.post("/password-reset", status_code=status.HTTP_202_ACCEPTED)
async def request_password_reset(
    payload: PasswordResetRequest,
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """
    Always 202, whether or not the address has an account.
    """
    email = str(payload.email).strip().lower()
    try:
        await identity.send_password_reset(email, f"{settings.APP_URL}/auth/reset-password")
    except IdentityProviderError as exc:
        logger.warning("Password reset email to %s failed: %s", email, exc.message)
    return {"status": "ok"}


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> RegisterResponse:
    """
    Self-registration for a new historical society: creates the tenant, the
    county_admin account and its profile.
    """
    tenant = await onboarding.register_organization(db, identity, payload)
    return RegisterResponse(
        message="Registration successful! Please check your email to verify your account.",
        tenant=TenantSummary.model_validate(tenant),
    )


@router.get("/invites/{token}", response_model=InviteLookupOut)
async def lookup_invite(token: str, db: AsyncSession = Depends(get_db)) -> InviteLookupOut:
    """
    Public: lets the accept-invite page show who is being invited where.
    """
    invite = await onboarding.load_open_invite(db, token)
    tenant = await db.get(Tenant, invite.tenant_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invite not found")
    return InviteLookupOut(
        email=invite.email,
        role=invite.role,
        tenant_id=tenant.id,
        tenant_name=tenant.name,
        expires_at=invite.expires_at,
    )


@router.post("/accept-invite", response_model=AcceptInviteResponse, status_code=status.HTTP_201_CREATED)
async def accept_invite(
    payload: AcceptInviteRequest,
    db: AsyncSession = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> AcceptInviteResponse:
    invite, profile = await onboarding.accept_invite(db, identity, payload)
    return AcceptInviteResponse(
        user_id=str(profile.id),
        tenant_id=str(invite.tenant_id),
        role=profile.role,
    )
