"""Provider webhook endpoint."""
from __future__ import annotations

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from caremeter.core.exceptions import ConfigurationError, SignatureError, ValidationError
from caremeter.provider.webhooks import SIGNATURE_HEADER, construct_event

router = APIRouter(tags=["webhooks"])

logger = structlog.get_logger(__name__)


@router.post("/api/webhooks/stripe")
async def stripe_webhook(request: Request) -> JSONResponse:
    """Verify and apply a provider subscription event.

    Answers 2xx only after the event was applied (or deliberately
    ignored), 400 when verification fails, and 500 when processing fails
    so the provider redelivers.
    """
    secret = request.app.state.webhook_secret
    if not secret:
        raise ConfigurationError("Webhook secret is not configured", code="webhook_secret_missing")

    payload = await request.body()
    try:
        event = construct_event(
            payload,
            request.headers.get(SIGNATURE_HEADER),
            secret,
            tolerance=request.app.state.webhook_tolerance,
        )
    except SignatureError as exc:
        logger.warning(
            "webhook.signature_invalid",
            reason=exc.code,
            client=request.client.host if request.client else None,
        )
        return JSONResponse(content={"error": "Invalid webhook signature"}, status_code=400)
    except ValidationError as exc:
        logger.warning("webhook.payload_invalid", reason=exc.code)
        return JSONResponse(content={"error": str(exc)}, status_code=400)

    try:
        outcome = await request.app.state.reconciler.handle_event(event)
    except Exception:
        logger.exception("webhook.processing_failed", event_id=event.id, event_type=event.type)
        return JSONResponse(
            content={"error": "Failed to process webhook event"}, status_code=500
        )

    return JSONResponse(content={"received": True, "outcome": str(outcome)})
