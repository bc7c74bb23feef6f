"""
Applies verified Stripe webhook events to tenants.

Every applied event appends one subscription_history row keyed by the Stripe
event id; a replayed event id is acknowledged and skipped. Events that cannot
be tied to a tenant are logged and acknowledged so Stripe stops retrying.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from heritage_admin.core.dates import from_unix, utcnow
from heritage_admin.core.roles import SubscriptionStatus
from heritage_admin.crud.tenants import get_tenant_by_customer_id
from heritage_admin.models.subscription_history import SubscriptionHistory
from heritage_admin.models.tenant import Tenant

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, dict, dict], Awaitable[Optional[Tenant]]]


def _metadata_tenant_id(obj: dict) -> Optional[uuid.UUID]:
    raw = (obj.get("metadata") or {}).get("tenant_id")
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        logger.warning("Ignoring malformed tenant_id %r in Stripe metadata", raw)
        return None


async def _tenant_from_metadata(db: AsyncSession, obj: dict) -> Optional[Tenant]:
    tenant_id = _metadata_tenant_id(obj)
    if tenant_id is None:
        return None
    return await db.get(Tenant, tenant_id)


def _period_bounds(subscription: dict) -> tuple[Optional[int], Optional[int]]:
    """
    Newer API versions moved current_period_* from the subscription onto its items.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if start is None or end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start if start is not None else items[0].get("current_period_start")
            end = end if end is not None else items[0].get("current_period_end")
    return start, end


def _invoice_subscription_metadata(invoice: dict) -> dict:
    details = invoice.get("subscription_details")
    if not details:
        details = ((invoice.get("parent") or {}).get("subscription_details")) or {}
    return {"metadata": details.get("metadata") or {}}


def _record(tenant: Tenant, event: dict, extra: dict[str, Any]) -> SubscriptionHistory:
    return SubscriptionHistory(
        tenant_id=tenant.id,
        status=tenant.subscription_status,
        stripe_event_id=event["id"],
        stripe_event_type=event["type"],
        event_metadata=extra,
    )


# ---------------------------------------------------------
# Handlers
# ---------------------------------------------------------
async def _subscription_changed(db: AsyncSession, event: dict, sub: dict) -> Optional[Tenant]:
    tenant = await _tenant_from_metadata(db, sub)
    if tenant is None:
        return None

    previous = tenant.subscription_status
    start, end = _period_bounds(sub)

    tenant.subscription_status = sub.get("status") or previous
    tenant.stripe_subscription_id = sub.get("id")
    if sub.get("customer") and not tenant.stripe_customer_id:
        tenant.stripe_customer_id = sub["customer"]
    tenant.subscription_start_date = from_unix(start)
    tenant.subscription_end_date = from_unix(end)
    tenant.trial_end_date = from_unix(sub.get("trial_end"))

    db.add(
        _record(
            tenant,
            event,
            {
                "subscription_id": sub.get("id"),
                "customer_id": sub.get("customer"),
                "previous_status": previous,
                "cancel_at_period_end": sub.get("cancel_at_period_end"),
            },
        )
    )
    return tenant


async def _subscription_deleted(db: AsyncSession, event: dict, sub: dict) -> Optional[Tenant]:
    tenant = await _tenant_from_metadata(db, sub)
    if tenant is None:
        return None

    previous = tenant.subscription_status
    tenant.subscription_status = SubscriptionStatus.CANCELED.value
    tenant.subscription_end_date = utcnow()

    db.add(
        _record(
            tenant,
            event,
            {"subscription_id": sub.get("id"), "customer_id": sub.get("customer"), "previous_status": previous},
        )
    )
    return tenant


async def _payment_succeeded(db: AsyncSession, event: dict, invoice: dict) -> Optional[Tenant]:
    tenant = None
    if invoice.get("customer"):
        tenant = await get_tenant_by_customer_id(db, invoice["customer"])
    if tenant is None:
        tenant = await _tenant_from_metadata(db, _invoice_subscription_metadata(invoice))
    if tenant is None:
        return None

    previous = tenant.subscription_status
    if previous == SubscriptionStatus.PAST_DUE.value:
        tenant.subscription_status = SubscriptionStatus.ACTIVE.value

    db.add(
        _record(
            tenant,
            event,
            {
                "invoice_id": invoice.get("id"),
                "amount_paid": invoice.get("amount_paid"),
                "currency": invoice.get("currency"),
                "previous_status": previous,
            },
        )
    )
    return tenant


async def _payment_failed(db: AsyncSession, event: dict, invoice: dict) -> Optional[Tenant]:
    if not invoice.get("customer"):
        return None
    tenant = await get_tenant_by_customer_id(db, invoice["customer"])
    if tenant is None:
        return None

    previous = tenant.subscription_status
    tenant.subscription_status = SubscriptionStatus.PAST_DUE.value

    db.add(
        _record(
            tenant,
            event,
            {
                "invoice_id": invoice.get("id"),
                "amount_due": invoice.get("amount_due"),
                "attempt_count": invoice.get("attempt_count"),
                "previous_status": previous,
            },
        )
    )
    return tenant


HANDLERS: dict[str, Handler] = {
    "customer.subscription.created": _subscription_changed,
    "customer.subscription.updated": _subscription_changed,
    "customer.subscription.deleted": _subscription_deleted,
    "invoice.payment_succeeded": _payment_succeeded,
    "invoice.payment_failed": _payment_failed,
}


async def _already_processed(db: AsyncSession, event_id: str) -> bool:
    stmt = select(SubscriptionHistory.id).where(SubscriptionHistory.stripe_event_id == event_id).limit(1)
    return (await db.execute(stmt)).scalar_one_or_none() is not None


async def apply_stripe_event(db: AsyncSession, event: dict) -> dict[str, Any]:
    """
    Dispatch a verified event. Returns the acknowledgement body.
    """
    event_id = event.get("id")
    event_type = event.get("type")
    logger.info("Stripe webhook received: %s (%s)", event_type, event_id)

    handler = HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled Stripe event type: %s", event_type)
        return {"received": True}

    if not event_id:
        logger.warning("Stripe event of type %s has no id; ignoring", event_type)
        return {"received": True}

    if await _already_processed(db, event_id):
        logger.info("Stripe event %s already processed", event_id)
        return {"received": True, "duplicate": True}

    obj = (event.get("data") or {}).get("object") or {}
    tenant = await handler(db, event, obj)
    if tenant is None:
        await db.rollback()
        logger.warning("Stripe event %s (%s): no matching tenant; nothing updated", event_id, event_type)
        return {"received": True}

    tenant_id = tenant.id
    new_status = tenant.subscription_status
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if await _already_processed(db, event_id):
            # Concurrent delivery of the same event won the insert
            logger.info("Stripe event %s recorded concurrently; skipping", event_id)
            return {"received": True, "duplicate": True}
        logger.error("Stripe event %s (%s) could not be stored: %s", event_id, event_type, exc.orig)
        raise

    logger.info("Tenant %s subscription is now %s after %s", tenant_id, new_status, event_type)
    return {"received": True}
