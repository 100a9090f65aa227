from caremeter.plans.catalog import (
    DEFAULT_PLANS,
    TRIAL_MINUTES,
    TRIAL_PERIOD_DAYS,
    PlanCatalog,
    PlanDefinition,
    format_price,
)

__all__ = [
    "DEFAULT_PLANS",
    "PlanCatalog",
    "PlanDefinition",
    "TRIAL_MINUTES",
    "TRIAL_PERIOD_DAYS",
    "format_price",
]
