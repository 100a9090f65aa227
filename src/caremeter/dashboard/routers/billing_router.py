"""Billing endpoints — checkout, reconciliation pulls, usage, and access."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from caremeter.billing.access import is_access_eligible
from caremeter.billing.models import SubscriptionFields
from caremeter.core.exceptions import AuthenticationError

router = APIRouter(tags=["billing"])


class _SyncFromCheckoutBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")


class _CheckoutBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_id: str | None = Field(default=None, alias="priceId")
    email: str | None = None


async def current_account(request: Request) -> str:
    """Resolve the authenticated account id or fail with 401."""
    account_id = await request.app.state.authenticate(request)
    if not account_id:
        raise AuthenticationError("Unauthorized", code="unauthenticated", status_code=401)
    return str(account_id)


def _subscription_payload(fields: SubscriptionFields) -> dict[str, Any]:
    return {
        "subscriptionId": fields.subscription_id,
        "status": fields.status,
        "plan": fields.plan,
        "periodStart": fields.period_start.isoformat() if fields.period_start else None,
        "periodEnd": fields.period_end.isoformat() if fields.period_end else None,
        "cancelAtPeriodEnd": fields.cancel_at_period_end,
    }


@router.post("/api/billing/sync-from-checkout")
async def sync_from_checkout(
    body: _SyncFromCheckoutBody,
    request: Request,
    account_id: str = Depends(current_account),
) -> JSONResponse:
    """Refresh the subscription right after the user returns from checkout."""
    fields = await request.app.state.reconciler.sync_from_checkout(
        account_id, body.session_id or ""
    )
    return JSONResponse(content=_subscription_payload(fields))


@router.post("/api/billing/sync")
async def sync_subscription(
    request: Request,
    account_id: str = Depends(current_account),
) -> JSONResponse:
    """Re-fetch the known subscription from the provider."""
    fields = await request.app.state.reconciler.sync_subscription(account_id)
    return JSONResponse(content=_subscription_payload(fields))


@router.get("/api/billing/usage")
async def billing_usage(
    request: Request,
    account_id: str = Depends(current_account),
) -> JSONResponse:
    """Call-minute usage for the current allowance window.

    Always answers 200; ``error`` is set when usage could not be loaded.
    """
    snapshot, error = await request.app.state.usage_meter.snapshot_or_default(account_id)
    content = snapshot.model_dump(mode="json", by_alias=True)
    content["error"] = error
    return JSONResponse(content=content)


@router.get("/api/billing/access")
async def billing_access(
    request: Request,
    account_id: str = Depends(current_account),
) -> JSONResponse:
    """Whether the account's subscription status unlocks the product."""
    record = await request.app.state.store.get_record(account_id)
    status = record.status if record is not None else None
    return JSONResponse(content={"status": status, "hasAccess": is_access_eligible(status)})


@router.post("/api/billing/checkout")
async def create_checkout(
    body: _CheckoutBody,
    request: Request,
    account_id: str = Depends(current_account),
) -> JSONResponse:
    """Start a provider-hosted checkout for a plan price."""
    cm = request.app.state.checkout_manager
    if cm is None:
        raise HTTPException(status_code=404, detail="CheckoutManager not configured")
    result = await cm.start_checkout(account_id, body.price_id or "", email=body.email)
    return JSONResponse(content=result)


@router.post("/api/billing/portal")
async def create_portal_session(
    request: Request,
    account_id: str = Depends(current_account),
) -> JSONResponse:
    """Open the provider's self-service billing portal."""
    cm = request.app.state.checkout_manager
    if cm is None:
        raise HTTPException(status_code=404, detail="CheckoutManager not configured")
    result = await cm.open_portal(account_id)
    return JSONResponse(content=result)
