"""Datastore abstraction for billing records and consumption rows.

The store is a row store: point lookups, equality filters, and upserts.
Per-row upserts are the only mutation primitive; concurrent writers to
one account are serialised by the backing store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from caremeter.billing.models import BillingRecord, ConsumptionRecord

BILLING_COLUMNS: frozenset[str] = frozenset(BillingRecord.model_fields) - {"account_id"}


class BillingStore(ABC):
    """Abstract base for billing datastores.

    Subclasses must implement every abstract method.  The class also
    supports the async context manager protocol (``async with``).
    """

    @abstractmethod
    async def get_record(self, account_id: str) -> BillingRecord | None:
        """Return the billing record for *account_id*, or ``None`` if unknown."""

    @abstractmethod
    async def upsert_record(self, account_id: str, values: Mapping[str, Any]) -> None:
        """Write *values* to the account's row, creating the row if absent.

        Only the given columns are written; columns not present in
        *values* keep their stored value.
        """

    @abstractmethod
    async def find_account_by_customer(self, customer_id: str) -> str | None:
        """Return the account owning provider customer *customer_id*."""

    @abstractmethod
    async def resolve_resource_owner(self, account_id: str) -> str | None:
        """Return the id consumption rows are keyed by for *account_id*."""

    @abstractmethod
    async def list_consumption(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
    ) -> list[ConsumptionRecord]:
        """Return consumption rows completed within ``[start, end]`` (inclusive)
        that carry a recorded duration."""

    async def close(self) -> None:
        """Release resources held by the store."""

    async def __aenter__(self) -> BillingStore:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()


def check_columns(values: Mapping[str, Any]) -> None:
    """Reject writes to columns outside the billing record.

    Raises:
        ValueError: If *values* names an unknown column.
    """
    unknown = set(values) - BILLING_COLUMNS
    if unknown:
        raise ValueError(f"Unknown billing columns: {sorted(unknown)}")
