from __future__ import annotations

import asyncio
import itertools
from typing import Any

from caremeter.core.exceptions import NotFoundError
from caremeter.provider.base import PaymentProvider


class MockProvider(PaymentProvider):
    """In-memory payment provider for testing.

    Usage::

        provider = MockProvider()
        provider.add_subscription({"id": "sub_1", "status": "active", ...})
        provider.add_checkout_session({"id": "cs_1", "mode": "subscription",
                                       "customer": "cus_1", "subscription": "sub_1"})

        sub = await provider.get_subscription("sub_1")

    Failure injection::

        provider.fail("get_subscription", UpstreamError("boom"))
        provider.delay = 5.0   # every call sleeps first
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, dict[str, Any]] = {}
        self._sessions: dict[str, dict[str, Any]] = {}
        self._failures: dict[str, Exception] = {}
        self._ids = itertools.count(1)
        self.delay: float = 0.0
        self.calls: list[tuple[str, dict[str, Any]]] = []

    # ------------------------------------------------------------------ #
    # Registration helpers
    # ------------------------------------------------------------------ #

    def add_subscription(self, subscription: dict[str, Any]) -> None:
        """Register (or replace) a subscription object."""
        self._subscriptions[subscription["id"]] = subscription

    def add_checkout_session(self, session: dict[str, Any]) -> None:
        """Register (or replace) a checkout session object."""
        self._sessions[session["id"]] = session

    def fail(self, method: str, error: Exception) -> None:
        """Make every call to *method* raise *error*."""
        self._failures[method] = error

    async def _enter(self, method: str, **params: Any) -> None:
        self.calls.append((method, params))
        if self.delay:
            await asyncio.sleep(self.delay)
        if method in self._failures:
            raise self._failures[method]

    # ------------------------------------------------------------------ #
    # PaymentProvider implementation
    # ------------------------------------------------------------------ #

    async def get_subscription(self, subscription_id: str) -> dict[str, Any]:
        await self._enter("get_subscription", subscription_id=subscription_id)
        try:
            return dict(self._subscriptions[subscription_id])
        except KeyError:
            raise NotFoundError(
                f"No such subscription: {subscription_id}", status_code=404
            ) from None

    async def get_checkout_session(self, session_id: str) -> dict[str, Any]:
        await self._enter("get_checkout_session", session_id=session_id)
        try:
            return dict(self._sessions[session_id])
        except KeyError:
            raise NotFoundError(
                f"No such checkout session: {session_id}", status_code=404
            ) from None

    async def create_customer(
        self,
        *,
        email: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        await self._enter("create_customer", email=email, metadata=metadata)
        return {"id": f"cus_mock_{next(self._ids)}", "email": email, "metadata": metadata or {}}

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
        await self._enter(
            "create_checkout_session",
            customer_id=customer_id,
            price_id=price_id,
            success_url=success_url,
            cancel_url=cancel_url,
            trial_period_days=trial_period_days,
            metadata=metadata,
        )
        session_id = f"cs_mock_{next(self._ids)}"
        session = {
            "id": session_id,
            "mode": "subscription",
            "customer": customer_id,
            "subscription": None,
            "url": f"https://checkout.example/{session_id}",
        }
        self._sessions[session_id] = session
        return dict(session)

    async def create_portal_session(
        self,
        *,
        customer_id: str,
        return_url: str,
    ) -> dict[str, Any]:
        await self._enter("create_portal_session", customer_id=customer_id, return_url=return_url)
        return {"id": f"bps_mock_{next(self._ids)}", "url": f"https://portal.example/{customer_id}"}
