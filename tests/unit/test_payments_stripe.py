"""Tests for the Stripe payments adapter (StripeClient mocked)."""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from unittest.mock import MagicMock

import pytest
import stripe

from stride.core.errors import PaymentsError
from stride.payments.base import CheckoutSession, PaymentsProvider
from stride.payments.stripe import StripePaymentsProvider, _map_error

WEBHOOK_SECRET = "whsec_test"


def _provider(client: MagicMock | None = None) -> StripePaymentsProvider:
    return StripePaymentsProvider(
        "sk_test", webhook_secret=WEBHOOK_SECRET, client=client or MagicMock()
    )


def _sign(payload: str, secret: str = WEBHOOK_SECRET) -> str:
    ts = int(time.time())
    digest = hmac.new(
        secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256
    ).hexdigest()
    return f"t={ts},v1={digest}"


class TestProtocol:
    def test_satisfies_protocol(self):
        assert isinstance(_provider(), PaymentsProvider)
        assert _provider().provider_id == "stripe"


class TestMapError:
    def test_authentication(self):
        err = _map_error(stripe.AuthenticationError("bad key"))
        assert str(err) == "[stripe] Invalid Stripe API key"

    def test_rate_limit(self):
        assert "Rate limited" in str(_map_error(stripe.RateLimitError("slow")))

    def test_invalid_request(self):
        err = _map_error(stripe.InvalidRequestError("No such price", "price"))
        assert "Invalid request: No such price" in str(err)

    def test_generic(self):
        assert isinstance(_map_error(stripe.StripeError("odd")), PaymentsError)


class TestCustomers:
    async def test_create_customer(self):
        client = MagicMock()
        client.customers.create.return_value = MagicMock(id="cus_123")
        customer_id = await _provider(client).create_customer(
            "ada@example.com", "Ada", "u1"
        )
        assert customer_id == "cus_123"
        client.customers.create.assert_called_once_with(
            params={
                "email": "ada@example.com",
                "name": "Ada",
                "metadata": {"user_id": "u1"},
            }
        )

    async def test_sdk_error_is_mapped(self):
        client = MagicMock()
        client.customers.create.side_effect = stripe.APIConnectionError("offline")
        with pytest.raises(PaymentsError, match="Could not reach Stripe"):
            await _provider(client).create_customer("a@example.com", "A", "u1")

    async def test_delete_customer(self):
        client = MagicMock()
        await _provider(client).delete_customer("cus_1")
        client.customers.delete.assert_called_once_with("cus_1")


class TestCheckout:
    async def test_subscription_with_trial(self):
        client = MagicMock()
        client.checkout.sessions.create.return_value = MagicMock(
            id="cs_1", url="https://checkout.stripe.com/cs_1"
        )
        session = await _provider(client).create_checkout_session(
            "cus_1",
            "price_monthly",
            success_url="https://app/ok",
            cancel_url="https://app/no",
            trial_days=7,
            metadata={"user_id": "u1", "plan": "monthly"},
        )
        assert session == CheckoutSession("cs_1", "https://checkout.stripe.com/cs_1")
        params = client.checkout.sessions.create.call_args.kwargs["params"]
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_monthly", "quantity": 1}]
        assert params["subscription_data"] == {
            "metadata": {"user_id": "u1", "plan": "monthly"},
            "trial_period_days": 7,
        }

    async def test_no_trial(self):
        client = MagicMock()
        client.checkout.sessions.create.return_value = MagicMock(id="cs", url="u")
        await _provider(client).create_checkout_session(
            "cus_1", "price_annual", success_url="s", cancel_url="c"
        )
        params = client.checkout.sessions.create.call_args.kwargs["params"]
        assert "trial_period_days" not in params["subscription_data"]

    async def test_portal(self):
        client = MagicMock()
        client.billing_portal.sessions.create.return_value = MagicMock(
            url="https://billing.stripe.com/p"
        )
        url = await _provider(client).create_portal_session("cus_1", "https://app")
        assert url == "https://billing.stripe.com/p"


class TestWebhooks:
    def test_valid_signature(self):
        payload = json.dumps(
            {
                "id": "evt_1",
                "type": "customer.subscription.updated",
                "data": {"object": {"customer": "cus_1", "status": "active"}},
            }
        )
        event = _provider().parse_webhook(payload.encode(), _sign(payload))
        assert event.id == "evt_1"
        assert event.type == "customer.subscription.updated"
        assert event.data == {"customer": "cus_1", "status": "active"}

    def test_bad_signature(self):
        payload = json.dumps({"id": "evt_1", "type": "x"})
        with pytest.raises(PaymentsError, match="Invalid webhook signature"):
            _provider().parse_webhook(payload.encode(), _sign(payload, "whsec_other"))

    def test_missing_secret(self):
        provider = StripePaymentsProvider("sk_test", client=MagicMock())
        with pytest.raises(PaymentsError, match="not configured"):
            provider.parse_webhook(b"{}", "t=1,v1=x")

    def test_malformed_payload(self):
        payload = "not json"
        with pytest.raises(PaymentsError, match="Malformed"):
            _provider().parse_webhook(payload.encode(), _sign(payload))

    def test_non_utf8_payload(self):
        with pytest.raises(PaymentsError, match="Malformed"):
            _provider().parse_webhook(b"\xff\xfe{}", "t=1,v1=abc")
