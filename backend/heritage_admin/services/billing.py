"""
Stripe seam: hosted checkout, billing portal and webhook verification.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import stripe
from fastapi.concurrency import run_in_threadpool

from heritage_admin.core.errors import BillingError, WebhookSignatureError

# Stripe rejects signatures older than this (seconds)
WEBHOOK_TOLERANCE = 300


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: Optional[str]


class BillingGateway(Protocol):
    async def create_customer(self, tenant_id: str, name: str) -> str:
        ...

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        tenant_id: str,
        trial_period_days: int,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        ...

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        ...


def parse_webhook_event(payload: bytes, signature: Optional[str], secret: str) -> dict[str, Any]:
    """
    Verify the Stripe-Signature header against the raw body, then decode it.
    Nothing in the payload is trusted before the signature checks out.
    """
    if not signature or not secret:
        raise WebhookSignatureError("Missing signature or webhook secret")

    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise WebhookSignatureError("Body is not valid UTF-8") from exc

    try:
        stripe.WebhookSignature.verify_header(body, signature, secret, WEBHOOK_TOLERANCE)
    except stripe.SignatureVerificationError as exc:
        raise WebhookSignatureError(str(exc)) from exc

    try:
        event = json.loads(body)
    except ValueError as exc:
        raise WebhookSignatureError("Body is not valid JSON") from exc
    if not isinstance(event, dict) or "type" not in event:
        raise WebhookSignatureError("Body is not a Stripe event")
    return event


@dataclass
class InMemoryBillingGateway:
    """Test double that records calls and returns fake Stripe ids."""

    customers: dict = field(default_factory=dict)  # customer_id -> metadata
    checkout_sessions: list = field(default_factory=list)
    portal_sessions: list = field(default_factory=list)
    fail_with: Optional[str] = None

    async def create_customer(self, tenant_id: str, name: str) -> str:
        if self.fail_with:
            raise BillingError(self.fail_with)
        customer_id = f"cus_{uuid.uuid4().hex[:14]}"
        self.customers[customer_id] = {"tenant_id": tenant_id, "name": name}
        return customer_id

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        tenant_id: str,
        trial_period_days: int,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        if self.fail_with:
            raise BillingError(self.fail_with)
        session_id = f"cs_test_{uuid.uuid4().hex[:24]}"
        self.checkout_sessions.append(
            {
                "id": session_id,
                "customer": customer_id,
                "price": price_id,
                "tenant_id": tenant_id,
                "trial_period_days": trial_period_days,
                "success_url": success_url,
                "cancel_url": cancel_url,
            }
        )
        return CheckoutSession(id=session_id, url=f"https://checkout.stripe.test/{session_id}")

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        if self.fail_with:
            raise BillingError(self.fail_with)
        self.portal_sessions.append({"customer": customer_id, "return_url": return_url})
        return f"https://billing.stripe.test/session/{customer_id}"


class StripeGateway:
    """Stripe server-side SDK. api_key is passed per call; no global state."""

    def __init__(self, api_key: str):
        self._api_key = api_key

    async def create_customer(self, tenant_id: str, name: str) -> str:
        try:
            customer = await run_in_threadpool(
                stripe.Customer.create,
                name=name,
                metadata={"tenant_id": tenant_id},
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            raise BillingError(exc.user_message or str(exc)) from exc
        return customer.id

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        tenant_id: str,
        trial_period_days: int,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSession:
        subscription_data: dict[str, Any] = {"metadata": {"tenant_id": tenant_id}}
        # Stripe rejects trial_period_days=0
        if trial_period_days > 0:
            subscription_data["trial_period_days"] = trial_period_days

        try:
            session = await run_in_threadpool(
                stripe.checkout.Session.create,
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                subscription_data=subscription_data,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={"tenant_id": tenant_id},
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            raise BillingError(exc.user_message or str(exc)) from exc
        return CheckoutSession(id=session.id, url=session.url)

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        try:
            session = await run_in_threadpool(
                stripe.billing_portal.Session.create,
                customer=customer_id,
                return_url=return_url,
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            raise BillingError(exc.user_message or str(exc)) from exc
        return session.url
