"""Reconciliation triggers — keep billing records in step with the provider.

Three independent paths refresh an account's billing record:

* **push** -- :meth:`Reconciler.handle_event` for verified webhook events;
* **pull after checkout** -- :meth:`Reconciler.sync_from_checkout`;
* **pull on demand** -- :meth:`Reconciler.sync_subscription`.

Each path ends in a full overwrite of the subscription columns derived
from a freshly obtained provider object.  Nothing is merged with the
stored record, so concurrent or repeated runs converge on whichever
provider snapshot was written last.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import structlog

from caremeter.billing.mapper import (
    map_subscription,
    object_id,
    primary_item,
    resolve_period,
    to_datetime,
)
from caremeter.billing.models import SubscriptionFields
from caremeter.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from caremeter.plans.catalog import PlanCatalog
from caremeter.provider.base import PaymentProvider
from caremeter.provider.webhooks import WebhookEvent
from caremeter.store.base import BillingStore
from caremeter.utils.async_helpers import with_timeout

logger = structlog.get_logger(__name__)

SUBSCRIPTION_DELETED_EVENT = "customer.subscription.deleted"
ACCOUNT_METADATA_KEY = "account_id"
INVOICE_PAYMENT_EVENTS = frozenset({"invoice.payment_succeeded", "invoice.payment_failed"})


class EventOutcome(StrEnum):
    """What :meth:`Reconciler.handle_event` did with an event."""

    APPLIED = "applied"
    CANCELED = "canceled"
    IGNORED = "ignored"
    STALE = "stale"
    UNKNOWN_ACCOUNT = "unknown_account"


class Reconciler:
    """Applies provider subscription state to the billing store.

    Args:
        store: Billing datastore.
        provider: Payment provider client.
        catalog: Plan catalog used to resolve plan slugs.
        provider_timeout: Upper bound in seconds for each provider call.
    """

    def __init__(
        self,
        store: BillingStore,
        provider: PaymentProvider,
        catalog: PlanCatalog,
        *,
        provider_timeout: float = 10.0,
    ) -> None:
        self._store = store
        self._provider = provider
        self._catalog = catalog
        self._timeout = provider_timeout

    async def apply_subscription(
        self,
        account_id: str,
        subscription: dict[str, Any],
    ) -> SubscriptionFields:
        """Map *subscription* and overwrite the account's subscription columns."""
        try:
            fields = map_subscription(subscription, self._catalog)
        except ValueError as exc:
            raise ValidationError(
                "Provider subscription object is malformed",
                code="malformed_subscription",
                details={"subscription_id": subscription.get("id")},
            ) from exc
        await self._store.upsert_record(account_id, fields.model_dump())
        logger.info(
            "reconcile.applied",
            account_id=account_id,
            subscription_id=fields.subscription_id,
            status=fields.status,
            plan=fields.plan,
        )
        return fields

    # -- push ---------------------------------------------------------------

    async def _account_for(self, subscription: dict[str, Any]) -> str | None:
        customer_id = object_id(subscription.get("customer"))
        if customer_id:
            account_id = await self._store.find_account_by_customer(customer_id)
            if account_id is not None:
                return account_id
        metadata = subscription.get("metadata") or {}
        return metadata.get(ACCOUNT_METADATA_KEY)

    async def handle_event(self, event: WebhookEvent) -> EventOutcome:
        """Apply a verified webhook event.

        Creation and update events carry the full subscription object, so
        no provider read is needed.  Deletion marks the record canceled.
        Redelivered events repeat the same write.
        """
        log = logger.bind(event_id=event.id, event_type=event.type)

        if not event.is_subscription_event:
            if event.type in INVOICE_PAYMENT_EVENTS:
                log.info("webhook.invoice_payment", invoice_id=event.data_object.get("id"))
            else:
                log.debug("webhook.event_ignored")
            return EventOutcome.IGNORED

        subscription = event.data_object
        account_id = await self._account_for(subscription)
        if account_id is None:
            log.warning(
                "webhook.unknown_account",
                customer_id=object_id(subscription.get("customer")),
            )
            return EventOutcome.UNKNOWN_ACCOUNT

        if event.type == SUBSCRIPTION_DELETED_EVENT:
            if not await self._mark_canceled(account_id, subscription):
                log.info(
                    "reconcile.stale_deletion_skipped",
                    account_id=account_id,
                    subscription_id=subscription.get("id"),
                )
                return EventOutcome.STALE
            log.info("reconcile.canceled", account_id=account_id)
            return EventOutcome.CANCELED

        await self.apply_subscription(account_id, subscription)
        return EventOutcome.APPLIED

    async def _mark_canceled(self, account_id: str, subscription: dict[str, Any]) -> bool:
        """Write the canceled state; ``False`` when the event is for a replaced subscription."""
        stored = await self._store.get_record(account_id)
        subscription_id = subscription.get("id")
        if (
            stored is not None
            and stored.subscription_id
            and subscription_id
            and stored.subscription_id != subscription_id
        ):
            return False

        values: dict[str, Any] = {
            "status": "canceled",
            "cancel_at_period_end": False,
        }
        if subscription_id:
            values["subscription_id"] = subscription_id

        # Keep the stored period end unless the event carries an explicit end
        # that still leaves period_start < period_end.
        ended_at = to_datetime(subscription.get("ended_at"))
        if ended_at is not None:
            period_start, _ = resolve_period(subscription, primary_item(subscription))
            if period_start is None and stored is not None:
                period_start = stored.period_start
            if period_start is None or period_start < ended_at:
                if period_start is not None:
                    values["period_start"] = period_start
                values["period_end"] = ended_at
            else:
                logger.info(
                    "reconcile.ended_at_ignored",
                    account_id=account_id,
                    ended_at=ended_at.isoformat(),
                    period_start=period_start.isoformat(),
                )
        await self._store.upsert_record(account_id, values)
        return True

    # -- pull after checkout ------------------------------------------------

    async def sync_from_checkout(self, account_id: str, session_id: str) -> SubscriptionFields:
        """Refresh the record from a completed checkout session.

        Raises:
            ValidationError: Missing session id, or the session is not a
                subscription checkout / carries no customer.
            AuthorizationError: The session belongs to another customer.
            NotFoundError: The session references no subscription.
            UpstreamError: The provider call failed or timed out.
        """
        if not session_id or not isinstance(session_id, str):
            raise ValidationError("Missing checkout session ID", code="missing_session_id")

        record = await self._store.get_record(account_id)
        session = await with_timeout(
            self._provider.get_checkout_session(session_id),
            self._timeout,
            operation="retrieve checkout session",
        )

        if session.get("mode") != "subscription":
            raise ValidationError(
                "Checkout session is not for a subscription", code="not_subscription_checkout"
            )

        session_customer = object_id(session.get("customer"))
        if not session_customer:
            raise ValidationError(
                "Checkout session missing customer information", code="missing_customer"
            )

        known_customer = record.customer_id if record is not None else None
        if known_customer is None:
            owner = await self._store.find_account_by_customer(session_customer)
            if owner is not None and owner != account_id:
                raise AuthorizationError(
                    "Session does not belong to the current account",
                    code="session_customer_mismatch",
                    status_code=403,
                )
            await self._store.upsert_record(account_id, {"customer_id": session_customer})
            logger.info("reconcile.customer_adopted", account_id=account_id, customer_id=session_customer)
        elif known_customer != session_customer:
            logger.warning(
                "reconcile.session_customer_mismatch",
                account_id=account_id,
                session_id=session_id,
            )
            raise AuthorizationError(
                "Session does not belong to the current account",
                code="session_customer_mismatch",
                status_code=403,
            )

        reference = session.get("subscription")
        subscription_id = object_id(reference)
        if not subscription_id:
            raise NotFoundError(
                "Unable to locate subscription for session",
                code="session_without_subscription",
                status_code=404,
            )

        if isinstance(reference, dict) and reference.get("status"):
            subscription = reference
        else:
            subscription = await self._fetch_subscription(subscription_id)
        return await self.apply_subscription(account_id, subscription)

    # -- pull on demand -----------------------------------------------------

    async def sync_subscription(self, account_id: str) -> SubscriptionFields:
        """Re-fetch the account's known subscription and overwrite the record.

        Raises:
            NotFoundError: The account has no subscription yet
                (``code="nothing_to_sync"``).
            UpstreamError: The provider call failed or timed out.
        """
        record = await self._store.get_record(account_id)
        if record is None or not record.subscription_id:
            raise NotFoundError(
                "No subscription to sync", code="nothing_to_sync", status_code=400
            )
        subscription = await self._fetch_subscription(record.subscription_id)
        return await self.apply_subscription(account_id, subscription)

    async def _fetch_subscription(self, subscription_id: str) -> dict[str, Any]:
        return await with_timeout(
            self._provider.get_subscription(subscription_id),
            self._timeout,
            operation="retrieve subscription",
        )
