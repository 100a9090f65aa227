"""Billing data models — persisted record, derived window, usage snapshot."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class RoundingPolicy(StrEnum):
    """How consumed seconds are converted to billable minutes."""

    TOTAL = "total"
    """Sum raw seconds across all calls, then round up once."""
    PER_CALL = "per_call"
    """Round each call up to a whole minute, then sum."""


def _check_period(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and start >= end:
        raise ValueError("period_start must be earlier than period_end")


class SubscriptionFields(BaseModel):
    """The full field set written by every reconciliation path.

    Produced by :func:`caremeter.billing.mapper.map_subscription`; always
    written as a whole, never merged with the previously stored values.
    """

    model_config = ConfigDict(frozen=True)

    subscription_id: str
    status: str
    plan: str | None = None
    period_start: datetime | None = None
    period_end: datetime | None = None
    cancel_at_period_end: bool = False

    @model_validator(mode="after")
    def _period_ordered(self) -> SubscriptionFields:
        _check_period(self.period_start, self.period_end)
        return self


class BillingRecord(BaseModel):
    """Per-account mirror of the provider's subscription state."""

    account_id: str
    customer_id: str | None = None
    subscription_id: str | None = None
    status: str | None = None
    plan: str | None = None
    period_start: datetime | None = None
    period_end: datetime | None = None
    cancel_at_period_end: bool = False

    @model_validator(mode="after")
    def _period_ordered(self) -> BillingRecord:
        _check_period(self.period_start, self.period_end)
        return self

    @property
    def has_subscription(self) -> bool:
        return self.subscription_id is not None

    @property
    def is_trial(self) -> bool:
        return self.status == "trialing"


class AllowanceWindow(BaseModel):
    """A month-length sub-interval of a billing period."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime


class ConsumptionRecord(BaseModel):
    """One completed call, written by the call-execution machinery."""

    owner_id: str
    completed_at: datetime
    duration_seconds: float | None = None


class UsageSnapshot(BaseModel):
    """Call-minute usage against the plan quota for the current window.

    Serialised with camelCase keys (``minutesUsed``, ``usagePercent``...)
    for dashboard clients.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    minutes_used: int = 0
    minutes_included: int = 0
    minutes_remaining: int = 0
    usage_percent: int = Field(default=0, ge=0, le=100)
    is_trial: bool = False
    period_start: datetime | None = None
    period_end: datetime | None = None
    call_count: int = 0

    @classmethod
    def zero(cls) -> UsageSnapshot:
        """Snapshot for an account that consumes nothing and is owed nothing."""
        return cls()
