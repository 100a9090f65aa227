from caremeter.billing.access import ACCESS_ELIGIBLE_STATUSES, is_access_eligible
from caremeter.billing.checkout import CheckoutManager
from caremeter.billing.mapper import map_subscription
from caremeter.billing.meter import UsageMeter, billable_minutes, usage_percent
from caremeter.billing.models import (
    AllowanceWindow,
    BillingRecord,
    ConsumptionRecord,
    RoundingPolicy,
    SubscriptionFields,
    UsageSnapshot,
)
from caremeter.billing.reconciliation import EventOutcome, Reconciler
from caremeter.billing.window import (
    add_months,
    current_allowance_window,
    iter_allowance_windows,
)

__all__ = [
    "ACCESS_ELIGIBLE_STATUSES",
    "AllowanceWindow",
    "BillingRecord",
    "CheckoutManager",
    "ConsumptionRecord",
    "EventOutcome",
    "Reconciler",
    "RoundingPolicy",
    "SubscriptionFields",
    "UsageMeter",
    "UsageSnapshot",
    "add_months",
    "billable_minutes",
    "current_allowance_window",
    "is_access_eligible",
    "iter_allowance_windows",
    "map_subscription",
    "usage_percent",
]
