"""Tests for plans/catalog.py — plan lookup and minute allowances."""
from __future__ import annotations

from caremeter.plans.catalog import (
    DEFAULT_PLANS,
    TRIAL_MINUTES,
    PlanCatalog,
    PlanDefinition,
    format_price,
)


def test_default_plans() -> None:
    catalog = PlanCatalog()
    assert [p.slug for p in catalog.plans] == ["essential", "peace_of_mind", "complete_care"]
    assert [p.minutes_included for p in DEFAULT_PLANS] == [180, 400, 750]


def test_get_plan_by_slug() -> None:
    catalog = PlanCatalog()
    plan = catalog.get_plan_by_slug("peace_of_mind")
    assert plan is not None
    assert plan.popular is True
    assert catalog.get_plan_by_slug("platinum") is None
    assert catalog.get_plan_by_slug(None) is None


def test_price_ids_applied_from_overrides() -> None:
    catalog = PlanCatalog(price_ids={"essential": "price_ess"})

    plan = catalog.get_plan_by_price_id("price_ess")

    assert plan is not None
    assert plan.slug == "essential"
    assert DEFAULT_PLANS[0].price_id == ""


def test_unconfigured_price_never_matches() -> None:
    catalog = PlanCatalog()
    assert catalog.get_plan_by_price_id("") is None
    assert catalog.get_plan_by_price_id(None) is None
    assert catalog.get_plan_by_price_id("price_anything") is None


def test_unknown_override_slug_is_ignored() -> None:
    catalog = PlanCatalog(price_ids={"gold": "price_gold"})
    assert catalog.get_plan_by_price_id("price_gold") is None


def test_minutes_for_plan() -> None:
    catalog = PlanCatalog()
    assert catalog.minutes_for_plan("essential", is_trial=False) == 180
    assert catalog.minutes_for_plan("complete_care", is_trial=False) == 750


def test_minutes_for_trial_uses_trial_allowance() -> None:
    catalog = PlanCatalog()
    assert catalog.minutes_for_plan("complete_care", is_trial=True) == TRIAL_MINUTES
    assert catalog.minutes_for_plan(None, is_trial=True) == TRIAL_MINUTES


def test_plan_specific_trial_allowance() -> None:
    catalog = PlanCatalog(
        [
            PlanDefinition(
                slug="pilot", name="Pilot", price_monthly=0, minutes_included=60, trial_minutes=15
            )
        ],
        trial_minutes=30,
    )
    assert catalog.minutes_for_plan("pilot", is_trial=True) == 15
    assert catalog.minutes_for_plan("other", is_trial=True) == 30


def test_unknown_plan_gets_no_minutes() -> None:
    assert PlanCatalog().minutes_for_plan("price_legacy", is_trial=False) == 0
    assert PlanCatalog().minutes_for_plan(None, is_trial=False) == 0


def test_format_price() -> None:
    assert format_price(2999) == "£29.99"
    assert format_price(0) == "£0.00"
