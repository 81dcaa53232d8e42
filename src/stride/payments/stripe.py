"""Stripe payments adapter."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import stripe

from stride.core.errors import PaymentsError
from stride.payments.base import CheckoutSession, WebhookEvent

PROVIDER_ID = "stripe"


def _map_error(e: stripe.StripeError) -> PaymentsError:
    """Map Stripe SDK errors to the stride error hierarchy."""
    if isinstance(e, stripe.AuthenticationError):
        return PaymentsError(PROVIDER_ID, "Invalid Stripe API key")
    if isinstance(e, stripe.RateLimitError):
        return PaymentsError(PROVIDER_ID, "Rate limited by Stripe")
    if isinstance(e, stripe.APIConnectionError):
        detail = e.user_message or e
        return PaymentsError(PROVIDER_ID, f"Could not reach Stripe: {detail}")
    if isinstance(e, stripe.InvalidRequestError):
        return PaymentsError(PROVIDER_ID, f"Invalid request: {e.user_message or e}")
    return PaymentsError(PROVIDER_ID, str(e))


class StripePaymentsProvider:
    """Provider adapter for Stripe customers, checkout and billing portal."""

    def __init__(
        self,
        api_key: str,
        *,
        webhook_secret: str | None = None,
        client: Any = None,
    ) -> None:
        self._client = client or stripe.StripeClient(api_key)
        self._webhook_secret = webhook_secret

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    async def _call(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except stripe.StripeError as e:
            raise _map_error(e) from e

    async def create_customer(self, email: str, name: str, user_id: str) -> str:
        customer = await self._call(
            self._client.customers.create,
            params={"email": email, "name": name, "metadata": {"user_id": user_id}},
        )
        return str(customer.id)

    async def delete_customer(self, customer_id: str) -> None:
        await self._call(self._client.customers.delete, customer_id)

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        *,
        success_url: str,
        cancel_url: str,
        trial_days: int = 0,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSession:
        subscription_data: dict[str, Any] = {"metadata": metadata or {}}
        if trial_days > 0:
            subscription_data["trial_period_days"] = trial_days
        session = await self._call(
            self._client.checkout.sessions.create,
            params={
                "customer": customer_id,
                "mode": "subscription",
                "line_items": [{"price": price_id, "quantity": 1}],
                "success_url": success_url,
                "cancel_url": cancel_url,
                "subscription_data": subscription_data,
                "metadata": metadata or {},
            },
        )
        return CheckoutSession(id=str(session.id), url=str(session.url))

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = await self._call(
            self._client.billing_portal.sessions.create,
            params={"customer": customer_id, "return_url": return_url},
        )
        return str(session.url)

    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        if not self._webhook_secret:
            raise PaymentsError(PROVIDER_ID, "Webhook secret not configured")
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PaymentsError(PROVIDER_ID, "Malformed webhook payload") from e
        try:
            stripe.WebhookSignature.verify_header(text, signature, self._webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise PaymentsError(PROVIDER_ID, "Invalid webhook signature") from e
        try:
            body = json.loads(text)
        except json.JSONDecodeError as e:
            raise PaymentsError(PROVIDER_ID, "Malformed webhook payload") from e
        return WebhookEvent(
            id=str(body.get("id", "")),
            type=str(body.get("type", "")),
            data=body.get("data", {}).get("object", {}) or {},
        )
