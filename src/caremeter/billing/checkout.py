"""Checkout and billing-portal session creation."""

from __future__ import annotations

from typing import Any

import structlog

from caremeter.billing.reconciliation import ACCOUNT_METADATA_KEY
from caremeter.core.exceptions import ConfigurationError, ValidationError
from caremeter.plans.catalog import TRIAL_PERIOD_DAYS, PlanCatalog
from caremeter.provider.base import PaymentProvider
from caremeter.store.base import BillingStore
from caremeter.utils.async_helpers import with_timeout

logger = structlog.get_logger(__name__)

SUCCESS_PATH = "/app/settings?billing=success"
CANCELED_PATH = "/app/settings?billing=cancelled"
PORTAL_RETURN_PATH = "/app/settings"


class CheckoutManager:
    """Starts provider-hosted checkout and self-service portal sessions.

    Args:
        store: Billing datastore; the provider customer id is persisted
            on first checkout.
        provider: Payment provider client.
        catalog: Plan catalog; only catalog prices can be purchased.
        app_url: Public base URL of the dashboard, used for redirects.
        trial_period_days: Trial length for new subscriptions (0 = none).
        provider_timeout: Upper bound in seconds for each provider call.
    """

    def __init__(
        self,
        store: BillingStore,
        provider: PaymentProvider,
        catalog: PlanCatalog,
        *,
        app_url: str | None,
        trial_period_days: int = TRIAL_PERIOD_DAYS,
        provider_timeout: float = 10.0,
    ) -> None:
        self._store = store
        self._provider = provider
        self._catalog = catalog
        self._app_url = app_url.rstrip("/") if app_url else None
        self._trial_days = trial_period_days
        self._timeout = provider_timeout

    def _url(self, path: str) -> str:
        if not self._app_url:
            raise ConfigurationError("App URL is not configured", code="app_url_missing")
        return f"{self._app_url}{path}"

    async def ensure_customer(self, account_id: str, email: str | None = None) -> str:
        """Return the account's provider customer id, creating one if absent."""
        record = await self._store.get_record(account_id)
        if record is not None and record.customer_id:
            return record.customer_id

        customer = await with_timeout(
            self._provider.create_customer(
                email=email, metadata={ACCOUNT_METADATA_KEY: account_id}
            ),
            self._timeout,
            operation="create customer",
        )
        customer_id: str = customer["id"]
        await self._store.upsert_record(account_id, {"customer_id": customer_id})
        logger.info("checkout.customer_created", account_id=account_id, customer_id=customer_id)
        return customer_id

    async def start_checkout(
        self,
        account_id: str,
        price_id: str,
        *,
        email: str | None = None,
    ) -> dict[str, Any]:
        """Create a subscription checkout session for a catalog price.

        Returns:
            ``{"sessionId": ..., "url": ...}``

        Raises:
            ValidationError: Missing or unknown price id.
        """
        if not price_id or not isinstance(price_id, str):
            raise ValidationError("Missing price ID", code="missing_price_id")
        plan = self._catalog.get_plan_by_price_id(price_id)
        if plan is None:
            raise ValidationError("Unknown price ID", code="unknown_price_id")

        success_url = f"{self._url(SUCCESS_PATH)}&session_id={{CHECKOUT_SESSION_ID}}"
        cancel_url = self._url(CANCELED_PATH)
        customer_id = await self.ensure_customer(account_id, email)

        session = await with_timeout(
            self._provider.create_checkout_session(
                customer_id=customer_id,
                price_id=price_id,
                success_url=success_url,
                cancel_url=cancel_url,
                trial_period_days=self._trial_days or None,
                metadata={ACCOUNT_METADATA_KEY: account_id},
            ),
            self._timeout,
            operation="create checkout session",
        )
        logger.info(
            "checkout.session_created",
            account_id=account_id,
            plan=plan.slug,
            session_id=session.get("id"),
        )
        return {"sessionId": session.get("id"), "url": session.get("url")}

    async def open_portal(self, account_id: str) -> dict[str, Any]:
        """Create a billing portal session for an account with a customer id.

        Raises:
            ValidationError: The account has never checked out.
        """
        record = await self._store.get_record(account_id)
        if record is None or not record.customer_id:
            raise ValidationError(
                "No active subscription found for this account", code="no_customer"
            )
        session = await with_timeout(
            self._provider.create_portal_session(
                customer_id=record.customer_id,
                return_url=self._url(PORTAL_RETURN_PATH),
            ),
            self._timeout,
            operation="create portal session",
        )
        return {"url": session.get("url")}
