# heritage_admin/api/v1/billing.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.api.deps.services import get_billing_gateway
from heritage_admin.api.deps.tenant import get_current_tenant, require_roles
from heritage_admin.core.config import settings
from heritage_admin.core.errors import WebhookSignatureError
from heritage_admin.core.roles import ProfileRole
from heritage_admin.db.session import get_db
from heritage_admin.models.profile import Profile
from heritage_admin.models.subscription_history import SubscriptionHistory
from heritage_admin.models.tenant import Tenant
from heritage_admin.schemas.billing import (
    CheckoutSessionCreate,
    CheckoutSessionOut,
    PlanOut,
    PortalSessionCreate,
    PortalSessionOut,
    SubscriptionHistoryOut,
    SubscriptionOverview,
)
from heritage_admin.schemas.tenant import TenantSubscriptionOut
from heritage_admin.services.billing import BillingGateway, parse_webhook_event
from heritage_admin.services.subscriptions import apply_stripe_event

logger = logging.getLogger(__name__)

router = APIRouter(tags=["billing"])

require_billing_admin = require_roles(ProfileRole.SUPER_ADMIN, ProfileRole.COUNTY_ADMIN)

PLAN_FEATURES = [
    "Unlimited locations",
    "Up to 5 images per location",
    "Museum hours and audio tours",
    "Invite editors and viewers",
    "Email support",
]

HISTORY_LIMIT = 20


def plan_catalogue() -> list[PlanOut]:
    return [
        PlanOut(key="monthly", price=50, period="month", price_id=settings.STRIPE_PRICE_MONTHLY or None),
        PlanOut(
            key="yearly",
            price=500,
            period="year",
            price_id=settings.STRIPE_PRICE_YEARLY or None,
            savings="2 months free",
        ),
    ]


def account_url(query: str = "") -> str:
    return f"{settings.APP_URL}/dashboard/account{query}"


async def _billing_tenant(db: AsyncSession, profile: Profile, requested: Optional[uuid.UUID]) -> Tenant:
    """
    county_admin bills their own tenant; super_admin may act for any tenant.
    """
    if profile.role == ProfileRole.SUPER_ADMIN.value and requested is not None:
        tenant_id = requested
    else:
        if requested is not None and requested != profile.tenant_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        tenant_id = profile.tenant_id

    if tenant_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No tenant assigned to your account")

    tenant = await db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return tenant


def _resolve_price(payload: CheckoutSessionCreate) -> str:
    configured = {
        "monthly": settings.STRIPE_PRICE_MONTHLY,
        "yearly": settings.STRIPE_PRICE_YEARLY,
    }
    if payload.price_id:
        if payload.price_id not in {p for p in configured.values() if p}:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="price_id: Unknown price")
        return payload.price_id

    price_id = configured[payload.plan]
    if not price_id:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Stripe price for the {payload.plan} plan is not configured",
        )
    return price_id


# ---------------------------------------------------------
# Checkout / portal
# ---------------------------------------------------------
@router.post("/stripe/create-checkout-session", response_model=CheckoutSessionOut)
async def create_checkout_session(
    payload: CheckoutSessionCreate,
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(require_billing_admin),
    billing: BillingGateway = Depends(get_billing_gateway),
):
    tenant = await _billing_tenant(db, profile, payload.tenant_id)
    price_id = _resolve_price(payload)

    if not tenant.stripe_customer_id:
        tenant.stripe_customer_id = await billing.create_customer(str(tenant.id), tenant.name)
        await db.commit()
        logger.info("Created Stripe customer %s for tenant %s", tenant.stripe_customer_id, tenant.id)

    session = await billing.create_checkout_session(
        customer_id=tenant.stripe_customer_id,
        price_id=price_id,
        tenant_id=str(tenant.id),
        trial_period_days=settings.TRIAL_PERIOD_DAYS,
        success_url=account_url("?success=true&session_id={CHECKOUT_SESSION_ID}"),
        cancel_url=account_url("?canceled=true"),
    )
    return CheckoutSessionOut(sessionId=session.id, url=session.url)


@router.post("/stripe/create-portal-session", response_model=PortalSessionOut)
async def create_portal_session(
    payload: Optional[PortalSessionCreate] = None,
    db: AsyncSession = Depends(get_db),
    profile: Profile = Depends(require_billing_admin),
    billing: BillingGateway = Depends(get_billing_gateway),
):
    tenant = await _billing_tenant(db, profile, payload.tenant_id if payload else None)
    if not tenant.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No customer found")

    url = await billing.create_portal_session(tenant.stripe_customer_id, account_url())
    return PortalSessionOut(url=url)


@router.get("/subscription", response_model=SubscriptionOverview)
async def get_subscription(
    db: AsyncSession = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    stmt = (
        select(SubscriptionHistory)
        .where(SubscriptionHistory.tenant_id == tenant.id)
        .order_by(SubscriptionHistory.created_at.desc())
        .limit(HISTORY_LIMIT)
    )
    history = (await db.execute(stmt)).scalars().all()

    return SubscriptionOverview(
        subscription=TenantSubscriptionOut(
            tenant_id=tenant.id,
            subscription_status=tenant.subscription_status,
            subscription_tier=tenant.subscription_tier,
            stripe_customer_id=tenant.stripe_customer_id,
            subscription_start_date=tenant.subscription_start_date,
            subscription_end_date=tenant.subscription_end_date,
            trial_end_date=tenant.trial_end_date,
        ),
        plans=plan_catalogue(),
        features=PLAN_FEATURES,
        history=[SubscriptionHistoryOut.model_validate(h) for h in history],
    )


# ---------------------------------------------------------
# Webhook
# ---------------------------------------------------------
@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
):
    """
    Raw body is required for signature verification; nothing is read from the
    payload before it verifies.
    """
    payload = await request.body()
    try:
        event = parse_webhook_event(payload, stripe_signature, settings.STRIPE_WEBHOOK_SECRET)
    except WebhookSignatureError as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    return await apply_stripe_event(db, event)
