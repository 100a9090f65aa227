"""Supabase (PostgREST) billing store using ``httpx``.

Every Supabase project exposes a PostgREST endpoint under ``/rest/v1``;
point lookups and range filters are expressed as query-string operators
(``eq.``, ``gte.``, ``lte.``, ``not.is.null``) and upserts as ``POST``
with ``Prefer: resolution=merge-duplicates``.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from caremeter.billing.models import BillingRecord, ConsumptionRecord
from caremeter.core.exceptions import DataStoreError
from caremeter.store.base import BillingStore, check_columns

logger = structlog.get_logger(__name__)


class SupabaseTables(BaseModel):
    """Table and column names used by :class:`SupabaseBillingStore`."""

    billing_table: str = "billing_records"
    owner_table: str = "elders"
    owner_account_column: str = "user_id"
    consumption_table: str = "call_executions"
    consumption_owner_column: str = "elder_id"
    completed_at_column: str = "completed_at"
    duration_column: str = "duration_seconds"


def _encode(values: Mapping[str, Any]) -> dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in values.items()
    }


class SupabaseBillingStore(BillingStore):
    """Billing store backed by the Supabase REST API.

    Args:
        url: Supabase project URL (e.g. ``"https://xyzcompany.supabase.co"``).
        api_key: Supabase ``service_role`` API key.  Billing rows are owned
            by the reconciliation subsystem, so row-level security must
            not hide them from this key.
        tables: Table/column naming overrides.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        tables: SupabaseTables | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._tables = tables or SupabaseTables()
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    # -- lifecycle ----------------------------------------------------------

    async def connect(self) -> None:
        """Open an ``httpx.AsyncClient`` pointed at the Supabase REST API."""
        self._client = httpx.AsyncClient(
            base_url=f"{self._url}/rest/v1",
            headers={
                "apikey": self._api_key,
                "Authorization": f"Bearer {self._api_key}",
            },
            timeout=self._timeout,
        )
        logger.info("supabase.connected", url=self._url)

    async def close(self) -> None:
        """Close the ``httpx.AsyncClient``."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("supabase.closed")

    async def __aenter__(self) -> SupabaseBillingStore:
        await self.connect()
        return self

    # -- transport ----------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        if self._client is None:
            raise RuntimeError("Not connected")
        try:
            resp = await self._client.request(
                method, path, params=params, json=json, headers=headers
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "supabase.request_failed",
                method=method,
                path=path,
                status=exc.response.status_code,
            )
            raise DataStoreError(
                f"Supabase {method} {path} failed with HTTP {exc.response.status_code}",
                code="datastore_error",
                status_code=500,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("supabase.request_error", method=method, path=path, error=str(exc))
            raise DataStoreError(
                f"Supabase {method} {path} failed: {exc}",
                code="datastore_error",
                status_code=500,
            ) from exc
        if not resp.content:
            return None
        return resp.json()

    async def _select_one(
        self, table: str, params: list[tuple[str, str]]
    ) -> dict[str, Any] | None:
        rows = await self._request("GET", f"/{table}", params=[*params, ("limit", "1")])
        if not rows:
            return None
        return rows[0]

    # -- BillingStore -------------------------------------------------------

    async def get_record(self, account_id: str) -> BillingRecord | None:
        row = await self._select_one(
            self._tables.billing_table,
            [("select", "*"), ("account_id", f"eq.{account_id}")],
        )
        if row is None:
            return None
        known = {k: v for k, v in row.items() if k in BillingRecord.model_fields}
        return BillingRecord(**known)

    async def upsert_record(self, account_id: str, values: Mapping[str, Any]) -> None:
        check_columns(values)
        await self._request(
            "POST",
            f"/{self._tables.billing_table}",
            params=[("on_conflict", "account_id")],
            json=[{"account_id": account_id, **_encode(values)}],
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    async def find_account_by_customer(self, customer_id: str) -> str | None:
        row = await self._select_one(
            self._tables.billing_table,
            [("select", "account_id"), ("customer_id", f"eq.{customer_id}")],
        )
        return None if row is None else row["account_id"]

    async def resolve_resource_owner(self, account_id: str) -> str | None:
        t = self._tables
        row = await self._select_one(
            t.owner_table,
            [("select", "id"), (t.owner_account_column, f"eq.{account_id}")],
        )
        return None if row is None else str(row["id"])

    async def list_consumption(
        self,
        owner_id: str,
        start: datetime,
        end: datetime,
    ) -> list[ConsumptionRecord]:
        t = self._tables
        rows = await self._request(
            "GET",
            f"/{t.consumption_table}",
            params=[
                ("select", f"{t.completed_at_column},{t.duration_column}"),
                (t.consumption_owner_column, f"eq.{owner_id}"),
                (t.completed_at_column, f"gte.{start.isoformat()}"),
                (t.completed_at_column, f"lte.{end.isoformat()}"),
                (t.duration_column, "not.is.null"),
            ],
        )
        return [
            ConsumptionRecord(
                owner_id=owner_id,
                completed_at=row[t.completed_at_column],
                duration_seconds=row[t.duration_column],
            )
            for row in rows or []
        ]
