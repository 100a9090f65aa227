"""Subscription field mapper — provider subscription object to persisted fields.

The mapping is pure: it reads only the subscription object and the plan
catalog, so every reconciliation path can re-derive the whole record and
overwrite it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from caremeter.billing.models import SubscriptionFields
from caremeter.plans.catalog import PlanCatalog


def to_datetime(value: Any) -> datetime | None:
    """Convert a provider unix timestamp (seconds) to an aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def object_id(value: Any) -> str | None:
    """Return the id of a provider reference that may be a bare id or an expanded object."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get("id")
    return str(value)


def primary_item(subscription: dict[str, Any]) -> dict[str, Any] | None:
    """Return the first billed item of *subscription*, if any."""
    items = subscription.get("items") or {}
    data = items.get("data") if isinstance(items, dict) else items
    if not data:
        return None
    return data[0]


def resolve_plan(item: dict[str, Any] | None, catalog: PlanCatalog) -> str | None:
    """Resolve the plan slug for a billed item.

    Priority: catalog slug for the price id, then the price nickname,
    then the raw price id.
    """
    if item is None:
        return None
    price = item.get("price")
    if isinstance(price, dict):
        price_id = price.get("id")
        nickname = price.get("nickname")
    else:
        price_id = price
        nickname = None

    plan = catalog.get_plan_by_price_id(price_id)
    if plan is not None:
        return plan.slug
    return nickname or price_id


def resolve_period(
    subscription: dict[str, Any],
    item: dict[str, Any] | None,
) -> tuple[datetime | None, datetime | None]:
    """Read the current period bounds.

    Newer provider API versions carry the period on the subscription item;
    older ones on the subscription itself.  The item pair wins when present.
    """
    source = item or {}
    start = source.get("current_period_start")
    if start is None:
        start = subscription.get("current_period_start")
    end = source.get("current_period_end")
    if end is None:
        end = subscription.get("current_period_end")
    return to_datetime(start), to_datetime(end)


def map_subscription(
    subscription: dict[str, Any],
    catalog: PlanCatalog,
) -> SubscriptionFields:
    """Map a provider subscription object to the full persisted field set.

    ``status`` is copied verbatim, including values this package does
    not know about.

    Raises:
        ValueError: If the object has no id or status.
    """
    subscription_id = subscription.get("id")
    status = subscription.get("status")
    if not subscription_id or not status:
        raise ValueError("subscription object is missing 'id' or 'status'")

    item = primary_item(subscription)
    period_start, period_end = resolve_period(subscription, item)

    return SubscriptionFields(
        subscription_id=subscription_id,
        status=status,
        plan=resolve_plan(item, catalog),
        period_start=period_start,
        period_end=period_end,
        cancel_at_period_end=bool(subscription.get("cancel_at_period_end") or False),
    )
