"""Shared test fixtures."""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from caremeter.billing.meter import UsageMeter
from caremeter.billing.reconciliation import Reconciler
from caremeter.plans.catalog import PlanCatalog
from caremeter.provider.mock import MockProvider
from caremeter.store.memory import InMemoryBillingStore

PRICE_IDS = {
    "essential": "price_essential",
    "peace_of_mind": "price_peace",
    "complete_care": "price_complete",
}


def ts(year: int, month: int, day: int, hour: int = 0) -> int:
    """Unix seconds for a UTC instant, the way the provider sends them."""
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp())


@pytest.fixture
def make_subscription() -> Callable[..., dict[str, Any]]:
    """Factory for provider subscription objects (item-level period bounds)."""

    def _make(
        sub_id: str = "sub_1",
        *,
        status: str = "active",
        customer: str = "cus_1",
        price: str = "price_essential",
        nickname: str | None = None,
        start: int | None = None,
        end: int | None = None,
        cancel_at_period_end: bool | None = False,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        start = ts(2024, 3, 1) if start is None else start
        end = ts(2024, 4, 1) if end is None else end
        sub: dict[str, Any] = {
            "id": sub_id,
            "object": "subscription",
            "status": status,
            "customer": customer,
            "items": {
                "object": "list",
                "data": [
                    {
                        "id": f"si_{sub_id}",
                        "price": {"id": price, "nickname": nickname},
                        "current_period_start": start,
                        "current_period_end": end,
                    }
                ],
            },
            "metadata": metadata or {},
        }
        if cancel_at_period_end is not None:
            sub["cancel_at_period_end"] = cancel_at_period_end
        return sub

    return _make


@pytest.fixture
def catalog() -> PlanCatalog:
    return PlanCatalog(price_ids=PRICE_IDS)


@pytest.fixture
def store() -> InMemoryBillingStore:
    return InMemoryBillingStore()


@pytest.fixture
def provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def reconciler(
    store: InMemoryBillingStore, provider: MockProvider, catalog: PlanCatalog
) -> Reconciler:
    return Reconciler(store, provider, catalog, provider_timeout=1.0)


@pytest.fixture
def meter(store: InMemoryBillingStore, catalog: PlanCatalog) -> UsageMeter:
    return UsageMeter(store, catalog)
