"""Allowance window calculator.

Splits a billing period into month-sized windows anchored at the period
start, so a yearly subscription still gets a monthly call-minute reset
on its own signup day rather than on calendar month boundaries.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

from caremeter.billing.models import AllowanceWindow

_EPSILON = timedelta(microseconds=1)


def add_months(value: datetime, months: int) -> datetime:
    """Shift *value* by whole calendar months.

    The day of month is preserved and clamped to the last day of the
    target month (Jan 31 + 1 month is Feb 29 in a leap year, Feb 28
    otherwise).  Time of day and tzinfo are kept.
    """
    total = value.month - 1 + months
    year = value.year + total // 12
    month = total % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def current_allowance_window(
    period_start: datetime | None,
    period_end: datetime | None,
    reference: datetime | None = None,
) -> AllowanceWindow | None:
    """Return the allowance window containing *reference*.

    Args:
        period_start: Start of the billing period.
        period_end: End of the billing period.
        reference: Instant to locate; defaults to now (UTC).  A reference
            outside the period is clamped into ``[period_start, period_end)``.

    Returns:
        The window, or ``None`` if either bound is missing or the period
        is empty.
    """
    if period_start is None or period_end is None:
        return None
    if period_start >= period_end:
        return None

    ref = reference if reference is not None else datetime.now(timezone.utc)
    if ref < period_start:
        ref = period_start
    if ref >= period_end:
        ref = period_end - _EPSILON

    anchor = period_start
    while True:
        following = add_months(anchor, 1)
        if following >= period_end or ref < following:
            break
        anchor = following

    return AllowanceWindow(start=anchor, end=min(add_months(anchor, 1), period_end))


def iter_allowance_windows(
    period_start: datetime,
    period_end: datetime,
) -> Iterator[AllowanceWindow]:
    """Yield every allowance window of a period, in order.

    Consecutive windows share a boundary and together cover the whole
    period.
    """
    window = current_allowance_window(period_start, period_end, period_start)
    while window is not None:
        yield window
        if window.end >= period_end:
            return
        window = current_allowance_window(period_start, period_end, window.end)
