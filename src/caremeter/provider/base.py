"""Payment provider abstraction.

The provider is reached as a call/response API returning subscription
and checkout-session objects as plain dicts in the provider's own JSON
shape.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from caremeter.resilience.retry import RetryPolicy


class ProviderConfig(BaseModel):
    """Configuration for a payment provider client.

    Attributes:
        api_key: Secret API key.
        base_url: Override the default API base URL.
        timeout: Upper bound in seconds for a single provider call,
            including connection setup.
        retry: Retry policy applied to idempotent reads only.
        extra_headers: Additional headers merged into every request.
    """

    api_key: str | None = None
    base_url: str | None = None
    timeout: float = Field(default=10.0, gt=0)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    extra_headers: dict[str, str] = Field(default_factory=dict)


class PaymentProvider(ABC):
    """Abstract base for payment providers.

    Implementations must raise :class:`~caremeter.core.exceptions.UpstreamError`
    (or a subclass) for transport failures and timeouts, so callers never
    hang on a stuck provider.
    """

    @abstractmethod
    async def get_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Retrieve a subscription object."""

    @abstractmethod
    async def get_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Retrieve a checkout session, with its subscription expanded when possible."""

    @abstractmethod
    async def create_customer(
        self,
        *,
        email: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Create a customer object."""

    @abstractmethod
    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        trial_period_days: int | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Create a subscription-mode checkout session."""

    @abstractmethod
    async def create_portal_session(
        self,
        *,
        customer_id: str,
        return_url: str,
    ) -> dict[str, Any]:
        """Create a self-service billing portal session."""

    async def close(self) -> None:
        """Release resources held by the provider client."""

    async def __aenter__(self) -> PaymentProvider:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()
