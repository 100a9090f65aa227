"""Payment provider access: API client, webhook verification, test double."""

from __future__ import annotations

from caremeter.provider.base import PaymentProvider, ProviderConfig
from caremeter.provider.mock import MockProvider
from caremeter.provider.stripe_client import StripeClient
from caremeter.provider.webhooks import (
    WebhookEvent,
    compute_signature,
    construct_event,
    sign_payload,
    verify_signature,
)

__all__ = [
    "MockProvider",
    "PaymentProvider",
    "ProviderConfig",
    "StripeClient",
    "WebhookEvent",
    "compute_signature",
    "construct_event",
    "sign_payload",
    "verify_signature",
]
