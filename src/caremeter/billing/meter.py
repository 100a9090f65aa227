"""Usage meter — call minutes consumed against the plan quota.

Snapshots are recomputed from the store on every request; nothing is
cached, so a reconciliation write is visible on the next read.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime

import structlog

from caremeter.billing.models import RoundingPolicy, UsageSnapshot
from caremeter.billing.window import current_allowance_window
from caremeter.plans.catalog import PlanCatalog
from caremeter.store.base import BillingStore

logger = structlog.get_logger(__name__)

USAGE_UNAVAILABLE = "Unable to load usage data"


def billable_minutes(
    durations: Iterable[float],
    policy: RoundingPolicy = RoundingPolicy.TOTAL,
) -> int:
    """Convert call durations in seconds to whole billable minutes.

    With :attr:`RoundingPolicy.TOTAL` the seconds are summed first and
    rounded up once (three 20s calls bill 1 minute).  With
    :attr:`RoundingPolicy.PER_CALL` each call is rounded up on its own
    (the same calls bill 3 minutes).  Non-positive durations bill nothing.
    """
    positive = [d for d in durations if d > 0]
    if policy is RoundingPolicy.PER_CALL:
        return sum(math.ceil(d / 60) for d in positive)
    return math.ceil(sum(positive) / 60)


def usage_percent(minutes_used: int, minutes_included: int) -> int:
    """Percentage of the quota used, rounded half up and capped at 100."""
    if minutes_included <= 0:
        return 0
    return min(100, math.floor(100 * minutes_used / minutes_included + 0.5))


class UsageMeter:
    """Builds :class:`UsageSnapshot` objects for accounts.

    Args:
        store: Billing datastore (read-only use).
        catalog: Plan catalog for quota lookup.
        rounding: Seconds-to-minutes rounding policy.
    """

    def __init__(
        self,
        store: BillingStore,
        catalog: PlanCatalog,
        *,
        rounding: RoundingPolicy = RoundingPolicy.TOTAL,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._rounding = rounding

    @property
    def rounding(self) -> RoundingPolicy:
        return self._rounding

    async def snapshot(
        self,
        account_id: str,
        reference: datetime | None = None,
    ) -> UsageSnapshot:
        """Compute the usage snapshot for *account_id* at *reference* (default now)."""
        record = await self._store.get_record(account_id)
        if record is None or not record.has_subscription:
            return UsageSnapshot.zero()

        is_trial = record.is_trial
        included = self._catalog.minutes_for_plan(record.plan, is_trial)
        quota_only = UsageSnapshot(
            minutes_included=included,
            minutes_remaining=included,
            is_trial=is_trial,
        )

        window = current_allowance_window(record.period_start, record.period_end, reference)
        if window is None:
            return quota_only

        quota_only = quota_only.model_copy(
            update={"period_start": window.start, "period_end": window.end}
        )
        owner_id = await self._store.resolve_resource_owner(account_id)
        if owner_id is None:
            return quota_only

        rows = await self._store.list_consumption(owner_id, window.start, window.end)
        durations = [r.duration_seconds for r in rows if r.duration_seconds is not None]
        used = billable_minutes(durations, self._rounding)

        return UsageSnapshot(
            minutes_used=used,
            minutes_included=included,
            minutes_remaining=max(0, included - used),
            usage_percent=usage_percent(used, included),
            is_trial=is_trial,
            period_start=window.start,
            period_end=window.end,
            call_count=len(durations),
        )

    async def snapshot_or_default(
        self,
        account_id: str,
        reference: datetime | None = None,
    ) -> tuple[UsageSnapshot, str | None]:
        """Like :meth:`snapshot`, but never raises.

        Dashboard pages must render even when usage cannot be loaded, so
        any failure yields a zeroed snapshot and an error message.
        """
        try:
            return await self.snapshot(account_id, reference), None
        except Exception:
            logger.exception("usage.load_failed", account_id=account_id)
            return UsageSnapshot.zero(), USAGE_UNAVAILABLE
