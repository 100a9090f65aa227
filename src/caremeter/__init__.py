"""caremeter — subscription reconciliation and call-minute metering."""

from caremeter.__version__ import __version__
from caremeter.billing import (
    AllowanceWindow,
    BillingRecord,
    CheckoutManager,
    ConsumptionRecord,
    EventOutcome,
    Reconciler,
    RoundingPolicy,
    SubscriptionFields,
    UsageMeter,
    UsageSnapshot,
    current_allowance_window,
    is_access_eligible,
    map_subscription,
)
from caremeter.core.config import BillingConfig
from caremeter.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CaremeterError,
    ConfigurationError,
    DataStoreError,
    NotFoundError,
    SignatureError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from caremeter.plans.catalog import PlanCatalog, PlanDefinition
from caremeter.provider import MockProvider, PaymentProvider, ProviderConfig, StripeClient
from caremeter.store import BillingStore, InMemoryBillingStore, SupabaseBillingStore
from caremeter.utils.logging import configure_logging

__all__ = [
    "AllowanceWindow",
    "AuthenticationError",
    "AuthorizationError",
    "BillingConfig",
    "BillingRecord",
    "BillingStore",
    "CaremeterError",
    "CheckoutManager",
    "ConfigurationError",
    "ConsumptionRecord",
    "DataStoreError",
    "EventOutcome",
    "InMemoryBillingStore",
    "MockProvider",
    "NotFoundError",
    "PaymentProvider",
    "PlanCatalog",
    "PlanDefinition",
    "ProviderConfig",
    "Reconciler",
    "RoundingPolicy",
    "SignatureError",
    "StripeClient",
    "SubscriptionFields",
    "SupabaseBillingStore",
    "UpstreamError",
    "UpstreamTimeoutError",
    "UsageMeter",
    "UsageSnapshot",
    "ValidationError",
    "__version__",
    "configure_logging",
    "current_allowance_window",
    "is_access_eligible",
    "map_subscription",
]
