"""Payments provider interface and data classes.

All payment adapters implement the ``PaymentsProvider`` protocol.
Provider SDK errors are mapped onto :class:`~stride.core.errors.PaymentsError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True, slots=True)
class WebhookEvent:
    """A verified provider event."""

    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class PaymentsProvider(Protocol):
    """Protocol that payments adapters must satisfy."""

    @property
    def provider_id(self) -> str: ...

    async def create_customer(self, email: str, name: str, user_id: str) -> str:
        """Create a customer and return its provider id."""
        ...

    async def delete_customer(self, customer_id: str) -> None: ...

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        *,
        success_url: str,
        cancel_url: str,
        trial_days: int = 0,
        metadata: dict[str, str] | None = None,
    ) -> CheckoutSession: ...

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Create a self-service billing portal session and return its URL."""
        ...

    def parse_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify *signature* over *payload* and decode the event."""
        ...
