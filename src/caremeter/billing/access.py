"""Access gate — which subscription statuses unlock the product."""

from __future__ import annotations

ACCESS_ELIGIBLE_STATUSES: frozenset[str] = frozenset({"trialing", "active"})


def is_access_eligible(status: str | None) -> bool:
    """Return ``True`` when *status* should grant product access.

    This is an allow-list: unknown or future provider statuses deny access.
    """
    if not status:
        return False
    return status in ACCESS_ELIGIBLE_STATUSES
