from __future__ import annotations

import os
from typing import Any, Literal

from pydantic import BaseModel, Field

from caremeter.billing.models import RoundingPolicy
from caremeter.plans.catalog import TRIAL_PERIOD_DAYS


class BillingConfig(BaseModel):
    stripe_api_key: str | None = None
    stripe_base_url: str = "https://api.stripe.com/v1"
    webhook_secret: str | None = None
    webhook_tolerance: int = Field(default=300, ge=0)
    provider_timeout: float = Field(default=10.0, gt=0, le=120)
    """Upper bound in seconds for any single payment provider call."""
    supabase_url: str | None = None
    supabase_key: str | None = None
    app_url: str | None = None
    trial_period_days: int = Field(default=TRIAL_PERIOD_DAYS, ge=0, le=730)
    """Free trial offered at checkout; 0 disables trials."""
    rounding_policy: RoundingPolicy = RoundingPolicy.TOTAL
    price_ids: dict[str, str] = Field(default_factory=dict)
    """Plan slug to provider price id."""
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls) -> BillingConfig:
        """Create a :class:`BillingConfig` from ``CAREMETER_*`` environment variables.

        Reads the following env vars (all optional):

        * ``CAREMETER_STRIPE_API_KEY`` → ``stripe_api_key``
        * ``CAREMETER_STRIPE_BASE_URL`` → ``stripe_base_url``
        * ``CAREMETER_STRIPE_WEBHOOK_SECRET`` → ``webhook_secret``
        * ``CAREMETER_WEBHOOK_TOLERANCE`` → ``webhook_tolerance`` (seconds)
        * ``CAREMETER_PROVIDER_TIMEOUT`` → ``provider_timeout`` (seconds)
        * ``CAREMETER_SUPABASE_URL`` / ``CAREMETER_SUPABASE_KEY``
        * ``CAREMETER_APP_URL`` → ``app_url``
        * ``CAREMETER_TRIAL_PERIOD_DAYS`` → ``trial_period_days``
        * ``CAREMETER_ROUNDING_POLICY`` → ``rounding_policy`` (``total`` or ``per_call``)
        * ``CAREMETER_PRICE_<SLUG>`` → ``price_ids[<slug>]``
        * ``CAREMETER_LOG_LEVEL`` / ``CAREMETER_LOG_JSON``

        Any variable that is not set or is empty is left at its default value.
        """
        kwargs: dict[str, Any] = {}

        simple = {
            "CAREMETER_STRIPE_API_KEY": "stripe_api_key",
            "CAREMETER_STRIPE_BASE_URL": "stripe_base_url",
            "CAREMETER_STRIPE_WEBHOOK_SECRET": "webhook_secret",
            "CAREMETER_SUPABASE_URL": "supabase_url",
            "CAREMETER_SUPABASE_KEY": "supabase_key",
            "CAREMETER_APP_URL": "app_url",
            "CAREMETER_ROUNDING_POLICY": "rounding_policy",
            "CAREMETER_LOG_LEVEL": "log_level",
        }
        for env_name, field_name in simple.items():
            value = os.environ.get(env_name)
            if value:
                kwargs[field_name] = value

        tolerance = os.environ.get("CAREMETER_WEBHOOK_TOLERANCE")
        if tolerance:
            kwargs["webhook_tolerance"] = int(tolerance)

        timeout = os.environ.get("CAREMETER_PROVIDER_TIMEOUT")
        if timeout:
            kwargs["provider_timeout"] = float(timeout)

        trial_days = os.environ.get("CAREMETER_TRIAL_PERIOD_DAYS")
        if trial_days:
            kwargs["trial_period_days"] = int(trial_days)

        log_json = os.environ.get("CAREMETER_LOG_JSON")
        if log_json:
            kwargs["log_json"] = log_json.lower() not in ("0", "false", "no")

        price_ids: dict[str, str] = {}
        for name, value in os.environ.items():
            if name.startswith("CAREMETER_PRICE_") and value:
                price_ids[name[len("CAREMETER_PRICE_"):].lower()] = value
        if price_ids:
            kwargs["price_ids"] = price_ids

        return cls(**kwargs)
