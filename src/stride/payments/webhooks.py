"""Apply verified billing events to profiles."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stride.db.models import Profile
    from stride.db.repository import Repository
    from stride.payments.base import WebhookEvent

logger = logging.getLogger(__name__)

SUBSCRIPTION_STATUSES = ("active", "canceled", "past_due", "trialing", "unpaid")


def _timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), UTC)


async def _profile_for_customer(
    repo: Repository, obj: dict[str, Any]
) -> Profile | None:
    customer_id = obj.get("customer")
    if not customer_id:
        return None
    profile = await repo.get_profile_by_customer(str(customer_id))
    if profile is None:
        logger.warning("No profile for billing customer %s", customer_id)
    return profile


async def apply_event(repo: Repository, event: WebhookEvent) -> bool:
    """Update profile billing state from *event*. Returns False if ignored.

    Flushes only; the caller commits.
    """
    obj = event.data
    kind = event.type

    if kind in ("customer.subscription.created", "customer.subscription.updated"):
        profile = await _profile_for_customer(repo, obj)
        if profile is None:
            return False
        status = obj.get("status")
        if status not in SUBSCRIPTION_STATUSES:
            logger.warning("Ignoring unknown subscription status %r", status)
            return False
        await repo.update_profile(
            profile.id,
            subscription_status=status,
            subscription_plan=(obj.get("metadata") or {}).get("plan"),
            trial_end_date=_timestamp(obj.get("trial_end")),
        )
        return True

    if kind == "customer.subscription.deleted":
        profile = await _profile_for_customer(repo, obj)
        if profile is None:
            return False
        await repo.update_profile(
            profile.id,
            subscription_status="canceled",
            subscription_plan=None,
            trial_end_date=None,
        )
        return True

    if kind in ("invoice.payment_succeeded", "invoice.payment_failed"):
        profile = await _profile_for_customer(repo, obj)
        if profile is None:
            return False
        status = "active" if kind == "invoice.payment_succeeded" else "past_due"
        await repo.update_profile(profile.id, subscription_status=status)
        return True

    if kind in ("customer.created", "customer.updated"):
        customer_id = obj.get("id")
        user_id = (obj.get("metadata") or {}).get("user_id")
        profile = await repo.get_profile(user_id) if user_id else None
        if profile is None and obj.get("email"):
            profile = await repo.get_profile_by_email(str(obj["email"]))
        if profile is None or not customer_id:
            return False
        await repo.update_profile(profile.id, stripe_customer_id=str(customer_id))
        return True

    logger.debug("Ignoring billing event %s", kind)
    return False
