"""Subscriptions: checkout, the billing portal and provider webhooks."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from stride.api.auth import get_current_user
from stride.api.errors import http_error
from stride.core.errors import StrideError
from stride.db.repository import Repository
from stride.payments.webhooks import apply_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/billing", tags=["billing"])


class CheckoutRequest(BaseModel):
    plan: str


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


def _payments(request: Request) -> Any:
    payments = getattr(request.app.state, "payments", None)
    if payments is None:
        raise HTTPException(status_code=503, detail="Billing is not configured")
    return payments


@router.get("/plans")
async def list_plans(request: Request) -> dict[str, Any]:
    plans = request.app.state.config.payments.plans
    return {
        name: {
            "amount": plan.amount,
            "interval": plan.interval,
            "trial_days": plan.trial_days,
        }
        for name, plan in plans.items()
    }


@router.post("/checkout", response_model=CheckoutResponse)
async def checkout(
    body: CheckoutRequest,
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> CheckoutResponse:
    """Start a subscription checkout for *plan*."""
    payments = _payments(request)
    config = request.app.state.config
    plan = config.payments.plans.get(body.plan)
    if plan is None or not plan.price_id:
        raise HTTPException(status_code=400, detail=f"Unknown plan: {body.plan}")

    app_url = config.auth.app_url.rstrip("/")
    try:
        async with request.app.state.db_factory() as session:
            repo = Repository(session)
            profile = await repo.get_profile(user.id)
            if profile is None:
                raise HTTPException(status_code=404, detail="Profile not found")
            customer_id = profile.stripe_customer_id
            if not customer_id:
                customer_id = await payments.create_customer(
                    user.email, profile.full_name, user.id
                )
                await repo.update_profile(user.id, stripe_customer_id=customer_id)
                await session.commit()
        result = await payments.create_checkout_session(
            customer_id,
            plan.price_id,
            success_url=f"{app_url}/dashboard?checkout=success",
            cancel_url=f"{app_url}/pricing?checkout=canceled",
            trial_days=plan.trial_days,
            metadata={"user_id": user.id, "plan": body.plan},
        )
    except StrideError as e:
        raise http_error(e) from e
    return CheckoutResponse(session_id=result.id, url=result.url)


@router.post("/portal")
async def portal(
    request: Request,
    user: Any = Depends(get_current_user),  # noqa: B008
) -> dict[str, str]:
    payments = _payments(request)
    async with request.app.state.db_factory() as session:
        profile = await Repository(session).get_profile(user.id)
    if profile is None or not profile.stripe_customer_id:
        raise HTTPException(status_code=400, detail="No billing account yet")
    return_url = f"{request.app.state.config.auth.app_url.rstrip('/')}/dashboard"
    try:
        url = await payments.create_portal_session(
            profile.stripe_customer_id, return_url
        )
    except StrideError as e:
        raise http_error(e) from e
    return {"url": url}


@router.post("/webhook")
async def webhook(request: Request) -> dict[str, Any]:
    """Verify and apply a provider event. Unknown events are acknowledged."""
    payments = _payments(request)
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature", "")
    try:
        event = payments.parse_webhook(payload, signature)
    except StrideError as e:
        logger.warning("Rejected billing webhook: %s", e)
        raise HTTPException(status_code=400, detail=str(e)) from e

    async with request.app.state.db_factory() as session:
        applied = await apply_event(Repository(session), event)
        await session.commit()
    logger.info("Billing event %s (%s) applied=%s", event.id, event.type, applied)
    return {"received": True, "applied": applied}
