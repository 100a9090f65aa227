"""Dashboard module — FastAPI application factory for billing endpoints.

Exposes checkout, reconciliation, usage, access, and provider webhook
endpoints.

Requires the ``dashboard`` extra::

    pip install caremeter[dashboard]
"""
from __future__ import annotations

from caremeter.dashboard.app import create_app_from_config, create_dashboard_app

__all__ = ["create_app_from_config", "create_dashboard_app"]
