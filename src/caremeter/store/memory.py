"""In-memory billing store for tests and local development."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from caremeter.billing.models import BillingRecord, ConsumptionRecord
from caremeter.store.base import BillingStore, check_columns


class InMemoryBillingStore(BillingStore):
    """Dict-backed :class:`BillingStore`.

    Writes are validated against :class:`BillingRecord` before they are
    stored, so an invalid write leaves the previous row untouched.
    """

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Any]] = {}
        self._owners: dict[str, str] = {}
        self._consumption: list[ConsumptionRecord] = []
        self.write_count = 0

    # -- seeding helpers ----------------------------------------------------

    def add_account(
        self,
        account_id: str,
        *,
        customer_id: str | None = None,
        owner_id: str | None = None,
    ) -> None:
        """Create an account row (and optionally its resource owner link)."""
        self._rows.setdefault(account_id, {"account_id": account_id})
        if customer_id is not None:
            self._rows[account_id]["customer_id"] = customer_id
        if owner_id is not None:
            self._owners[account_id] = owner_id

    def add_consumption(self, record: ConsumptionRecord) -> None:
        """Append a consumption row."""
        self._consumption.append(record)

    # -- BillingStore -------------------------------------------------------

    async def get_record(self, account_id: str) -> BillingRecord | None:
        row = self._rows.get(account_id)
        if row is None:
            return None
        return BillingRecord(**row)

    async def upsert_record(self, account_id: str, values: Mapping[str, Any]) -> None:
        check_columns(values)
        row = {**self._rows.get(account_id, {"account_id": account_id}), **values}
        BillingRecord(**row)
        self._rows[account_id] = row
        self.write_count += 1

    async def find_account_by_customer(self, customer_id: str) -> str | None:
        for account_id, row in self._rows.items():
            if row.get("customer_id") == customer_id:
                return account_id
        return None

    async def resolve_resource_owner(self, account_id: str) -> str | None:
        return self._owners.get(account_id)

    async def list_consumption(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
    ) -> list[ConsumptionRecord]:
        return [
            r
            for r in self._consumption
            if r.owner_id == owner_id
            and r.duration_seconds is not None
            and start <= r.completed_at <= end
        ]
