"""Tests for the billing endpoints against a recording payments provider."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from stride.api.routes.billing import router as billing_router
from stride.core.errors import PaymentsError
from stride.db.repository import Repository
from stride.payments.base import CheckoutSession, PaymentsProvider, WebhookEvent
from stride.payments.stripe import StripePaymentsProvider
from tests.fixtures.apps import add_user, auth_headers, make_app, make_config

# ── Helpers ────────────────────────────────────────────────────


class RecordingPayments:
    """In-memory provider; the webhook signature must be ``"valid"``."""

    provider_id = "fake"

    def __init__(self, *, fail_checkout: bool = False) -> None:
        self.fail_checkout = fail_checkout
        self.customers: list[tuple[str, str, str]] = []
        self.checkouts: list[dict[str, Any]] = []

    async def create_customer(self, email: str, name: str, user_id: str) -> str:
        self.customers.append((email, name, user_id))
        return f"cus_{len(self.customers)}"

    async def delete_customer(self, customer_id: str) -> None:
        pass

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
        if self.fail_checkout:
            raise PaymentsError(self.provider_id, "card_declined")
        self.checkouts.append(
            {
                "customer_id": customer_id,
                "price_id": price_id,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "trial_days": trial_days,
                "metadata": metadata,
            }
        )
        return CheckoutSession("cs_1", "https://pay.example.com/cs_1")

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        return f"https://pay.example.com/portal/{customer_id}"

    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        if signature != "valid":
            raise PaymentsError(self.provider_id, "bad signature")
        body = json.loads(payload)
        return WebhookEvent(body["id"], body["type"], body["data"]["object"])


async def _setup(
    payments: Any = None,
) -> tuple[FastAPI, TestClient, str, RecordingPayments]:
    payments = payments or RecordingPayments()
    config = make_config(app_url="https://app.example.com/")
    config.payments.plans["monthly"].price_id = "price_monthly"
    app = await make_app(billing_router, config=config, payments=payments)
    user = await add_user(app, "payer@example.com", full_name="Pat Payer")
    return app, TestClient(app, raise_server_exceptions=False), user, payments


def _event(event_type: str, obj: dict[str, Any]) -> bytes:
    body = {"id": "evt_1", "type": event_type, "data": {"object": obj}}
    return json.dumps(body).encode()


# ── Plans / checkout ──────────────────────────────────────────


class TestPlans:
    async def test_lists_configured_plans(self) -> None:
        _, client, _, _ = await _setup()
        data = client.get("/api/billing/plans").json()
        assert data["monthly"] == {"amount": 1999, "interval": "month", "trial_days": 7}
        assert data["annual"]["interval"] == "year"


class TestCheckout:
    def test_recording_provider_satisfies_protocol(self) -> None:
        assert isinstance(RecordingPayments(), PaymentsProvider)

    async def test_creates_customer_once(self) -> None:
        app, client, user, payments = await _setup()
        for _ in range(2):
            resp = client.post(
                "/api/billing/checkout",
                json={"plan": "monthly"},
                headers=auth_headers(user),
            )
            assert resp.status_code == 200
            assert resp.json() == {
                "session_id": "cs_1",
                "url": "https://pay.example.com/cs_1",
            }

        assert payments.customers == [("payer@example.com", "Pat Payer", user)]
        checkout = payments.checkouts[0]
        assert checkout["customer_id"] == "cus_1"
        assert checkout["price_id"] == "price_monthly"
        assert checkout["trial_days"] == 7
        assert checkout["metadata"] == {"user_id": user, "plan": "monthly"}
        assert checkout["success_url"] == (
            "https://app.example.com/dashboard?checkout=success"
        )
        async with app.state.db_factory() as session:
            profile = await Repository(session).get_profile(user)
        assert profile.stripe_customer_id == "cus_1"

    async def test_plan_without_price(self) -> None:
        _, client, user, _ = await _setup()
        resp = client.post(
            "/api/billing/checkout",
            json={"plan": "annual"},
            headers=auth_headers(user),
        )
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Unknown plan: annual"

    async def test_provider_error(self) -> None:
        _, client, user, _ = await _setup(RecordingPayments(fail_checkout=True))
        resp = client.post(
            "/api/billing/checkout",
            json={"plan": "monthly"},
            headers=auth_headers(user),
        )
        assert resp.status_code == 502

    async def test_not_configured(self) -> None:
        app = await make_app(billing_router)
        user = await add_user(app)
        client = TestClient(app, raise_server_exceptions=False)
        resp = client.post(
            "/api/billing/checkout",
            json={"plan": "monthly"},
            headers=auth_headers(user),
        )
        assert resp.status_code == 503


class TestPortal:
    async def test_requires_customer(self) -> None:
        _, client, user, _ = await _setup()
        resp = client.post("/api/billing/portal", headers=auth_headers(user))
        assert resp.status_code == 400

    async def test_portal_url(self) -> None:
        _, client, user, _ = await _setup()
        client.post(
            "/api/billing/checkout",
            json={"plan": "monthly"},
            headers=auth_headers(user),
        )
        resp = client.post("/api/billing/portal", headers=auth_headers(user))
        assert resp.json() == {"url": "https://pay.example.com/portal/cus_1"}


# ── Webhooks ──────────────────────────────────────────────────


class TestWebhook:
    async def test_rejects_bad_signature(self) -> None:
        _, client, _, _ = await _setup()
        resp = client.post(
            "/api/billing/webhook",
            content=_event("invoice.payment_failed", {"customer": "cus_1"}),
            headers={"Stripe-Signature": "forged"},
        )
        assert resp.status_code == 400

    async def test_applies_subscription_update(self) -> None:
        app, client, user, _ = await _setup()
        client.post(
            "/api/billing/checkout",
            json={"plan": "monthly"},
            headers=auth_headers(user),
        )
        resp = client.post(
            "/api/billing/webhook",
            content=_event(
                "customer.subscription.updated",
                {
                    "customer": "cus_1",
                    "status": "active",
                    "metadata": {"plan": "monthly"},
                },
            ),
            headers={"Stripe-Signature": "valid"},
        )
        assert resp.json() == {"received": True, "applied": True}
        async with app.state.db_factory() as session:
            profile = await Repository(session).get_profile(user)
        assert profile.subscription_status == "active"
        assert profile.subscription_plan == "monthly"

    async def test_unknown_event_acknowledged(self) -> None:
        _, client, _, _ = await _setup()
        resp = client.post(
            "/api/billing/webhook",
            content=_event("charge.refunded", {}),
            headers={"Stripe-Signature": "valid"},
        )
        assert resp.status_code == 200
        assert resp.json()["applied"] is False

    async def test_non_utf8_body_is_rejected(self) -> None:
        stripe_provider = StripePaymentsProvider(
            "sk_test", webhook_secret="whsec_test", client=MagicMock()
        )
        _, client, _, _ = await _setup(stripe_provider)
        resp = client.post(
            "/api/billing/webhook",
            content=b"\xff\xfe{}",
            headers={"Stripe-Signature": "t=1,v1=abc"},
        )
        assert resp.status_code == 400
        assert "Malformed" in resp.json()["detail"]
