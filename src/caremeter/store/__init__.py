"""Billing datastores.

- :class:`BillingStore` -- abstract base
- :class:`InMemoryBillingStore` -- dict-backed, for tests and local runs
- :class:`SupabaseBillingStore` -- Supabase REST (PostgREST) over ``httpx``
"""

from __future__ import annotations

from caremeter.store.base import BillingStore
from caremeter.store.memory import InMemoryBillingStore
from caremeter.store.supabase import SupabaseBillingStore, SupabaseTables

__all__ = [
    "BillingStore",
    "InMemoryBillingStore",
    "SupabaseBillingStore",
    "SupabaseTables",
]
