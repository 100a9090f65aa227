"""Webhook signature verification and event parsing.

Stripe signs each delivery with a header of the form
``t=<unix seconds>,v1=<hex>[,v1=<hex>...]`` where each ``v1`` value is
HMAC-SHA256 over ``"<t>.<raw body>"`` keyed by the endpoint secret.
Several ``v1`` entries appear while a secret is being rolled.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from caremeter.core.exceptions import SignatureError, ValidationError

SIGNATURE_HEADER = "stripe-signature"
DEFAULT_TOLERANCE = 300

SUBSCRIPTION_LIFECYCLE_EVENTS = frozenset(
    {
        "customer.subscription.created",
        "customer.subscription.updated",
        "customer.subscription.deleted",
    }
)


class WebhookEvent(BaseModel):
    """A verified provider event."""

    id: str
    type: str
    created: int | None = None
    data_object: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_subscription_event(self) -> bool:
        return self.type in SUBSCRIPTION_LIFECYCLE_EVENTS


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    """Compute the hex HMAC-SHA256 signature for a signed payload."""
    signed = str(timestamp).encode("utf-8") + b"." + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def sign_payload(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a signature header value for *payload*.

    Useful for replaying stored events against a local endpoint.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},v1={compute_signature(payload, secret, ts)}"


def _parse_header(header: str) -> tuple[int, list[str]]:
    timestamp: int | None = None
    signatures: list[str] = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise SignatureError(
                    "Malformed signature timestamp", code="signature_malformed"
                ) from None
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        raise SignatureError("Malformed signature header", code="signature_malformed")
    return timestamp, signatures


def verify_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    *,
    tolerance: int = DEFAULT_TOLERANCE,
    now: float | None = None,
) -> None:
    """Verify *header* against *payload*.

    Args:
        payload: The raw request body, exactly as received.
        header: The signature header value.
        secret: The endpoint signing secret.
        tolerance: Maximum age in seconds of the signed timestamp
            (``0`` disables the age check).
        now: Current unix time; defaults to :func:`time.time`.

    Raises:
        SignatureError: If the header is missing, malformed, stale, or
            no signature matches.
    """
    if not header:
        raise SignatureError("Missing signature header", code="signature_missing")

    timestamp, signatures = _parse_header(header)
    expected = compute_signature(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise SignatureError("No matching signature", code="signature_mismatch")

    current = time.time() if now is None else now
    if tolerance > 0 and current - timestamp > tolerance:
        raise SignatureError(
            "Signature timestamp outside tolerance",
            code="signature_expired",
            details={"timestamp": timestamp, "tolerance": tolerance},
        )


def construct_event(
    payload: bytes,
    header: str | None,
    secret: str,
    *,
    tolerance: int = DEFAULT_TOLERANCE,
) -> WebhookEvent:
    """Verify *payload* and parse it into a :class:`WebhookEvent`.

    Nothing is parsed before the signature is checked.

    Raises:
        SignatureError: If verification fails.
        ValidationError: If the verified body is not a well-formed event.
    """
    verify_signature(payload, header, secret, tolerance=tolerance)

    try:
        body = json.loads(payload)
    except ValueError as exc:
        raise ValidationError("Webhook body is not valid JSON", code="invalid_event") from exc

    if not isinstance(body, dict) or "id" not in body or "type" not in body:
        raise ValidationError("Webhook body is not an event", code="invalid_event")

    data = body.get("data") or {}
    data_object = (data.get("object") or {}) if isinstance(data, dict) else None
    if not isinstance(data_object, dict):
        raise ValidationError("Webhook data is not an object", code="invalid_event")
    try:
        return WebhookEvent(
            id=body["id"],
            type=body["type"],
            created=body.get("created"),
            data_object=data_object,
        )
    except PydanticValidationError as exc:
        raise ValidationError("Webhook body is not an event", code="invalid_event") from exc
