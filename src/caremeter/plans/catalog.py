"""Static plan catalog — plan slug to price, quota, and trial allowance.

The payment provider is the billing source of truth; the catalog only
maps provider price ids back to plan slugs and supplies the call-minute
quota each plan includes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

TRIAL_PERIOD_DAYS = 7
TRIAL_MINUTES = 90


class PlanDefinition(BaseModel):
    """A purchasable plan.

    Attributes:
        slug: Identifier stored in the billing record's ``plan`` column.
        name: Display name.
        price_monthly: Monthly price in pence (display only).
        currency: ISO 4217 currency code.
        minutes_included: Call minutes included per allowance window.
        trial_minutes: Minutes granted while the subscription is trialing;
            ``None`` uses the catalog-wide trial allowance.
        price_id: Provider price id for this plan.
    """

    slug: str
    name: str
    price_monthly: int
    currency: str = "GBP"
    minutes_included: int = Field(ge=0)
    trial_minutes: int | None = None
    features: list[str] = Field(default_factory=list)
    price_id: str = ""
    popular: bool = False


DEFAULT_PLANS: tuple[PlanDefinition, ...] = (
    PlanDefinition(
        slug="essential",
        name="Essential",
        price_monthly=2999,
        minutes_included=180,
        features=[
            "180 call minutes / month",
            "Daily check-in calls",
            "Post-call reports",
            "Emergency escalation",
        ],
    ),
    PlanDefinition(
        slug="peace_of_mind",
        name="Peace of Mind",
        price_monthly=4999,
        minutes_included=400,
        features=[
            "400 call minutes / month",
            "Daily check-in calls",
            "Post-call reports",
            "Emergency escalation",
        ],
        popular=True,
    ),
    PlanDefinition(
        slug="complete_care",
        name="Complete Care",
        price_monthly=7999,
        minutes_included=750,
        features=[
            "750 call minutes / month",
            "Daily check-in calls",
            "Post-call reports",
            "Emergency escalation",
            "Priority support",
        ],
    ),
)


class PlanCatalog:
    """Read-only lookup over a set of :class:`PlanDefinition` objects.

    Args:
        plans: Plans to expose.  Defaults to :data:`DEFAULT_PLANS`.
        price_ids: Optional slug to provider price id mapping applied on
            top of the plans (usually loaded from the environment).
        trial_minutes: Catalog-wide trial allowance.
    """

    def __init__(
        self,
        plans: Iterable[PlanDefinition] | None = None,
        *,
        price_ids: Mapping[str, str] | None = None,
        trial_minutes: int = TRIAL_MINUTES,
    ) -> None:
        overrides = dict(price_ids or {})
        self._plans: dict[str, PlanDefinition] = {}
        for plan in DEFAULT_PLANS if plans is None else plans:
            if plan.slug in overrides:
                plan = plan.model_copy(update={"price_id": overrides[plan.slug]})
            self._plans[plan.slug] = plan
        self._trial_minutes = trial_minutes

        unknown = set(overrides) - set(self._plans)
        if unknown:
            logger.warning("plans.unknown_price_overrides", slugs=sorted(unknown))

    @property
    def plans(self) -> list[PlanDefinition]:
        return list(self._plans.values())

    def get_plan_by_slug(self, slug: str | None) -> PlanDefinition | None:
        """Look up a plan by its slug (e.g. ``"essential"``)."""
        if not slug:
            return None
        return self._plans.get(slug)

    def get_plan_by_price_id(self, price_id: str | None) -> PlanDefinition | None:
        """Look up a plan by its provider price id.

        Plans without a configured price id never match.
        """
        if not price_id:
            return None
        for plan in self._plans.values():
            if plan.price_id and plan.price_id == price_id:
                return plan
        return None

    def minutes_for_plan(self, slug: str | None, is_trial: bool) -> int:
        """Return the minute allowance for a plan.

        During trial the plan's own trial allowance applies, falling back
        to the catalog-wide one.  Unknown plans are owed nothing.
        """
        plan = self.get_plan_by_slug(slug)
        if is_trial:
            if plan is not None and plan.trial_minutes is not None:
                return plan.trial_minutes
            return self._trial_minutes
        return plan.minutes_included if plan is not None else 0


def format_price(pence: int) -> str:
    """Format a pence amount as a display price, e.g. ``"£29.99"``."""
    return f"£{pence / 100:.2f}"
