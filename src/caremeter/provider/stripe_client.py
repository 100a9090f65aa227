"""Stripe REST client — subscriptions, checkout sessions, portal sessions."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
import structlog

from caremeter.core.exceptions import (
    CaremeterError,
    ConfigurationError,
    NotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from caremeter.provider.base import PaymentProvider, ProviderConfig
from caremeter.utils.async_helpers import with_timeout

logger = structlog.get_logger(__name__)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Seconds to wait from a ``Retry-After`` header.

    The header is either delay-seconds or an HTTP date; anything else is
    treated as absent.
    """
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return max(0.0, seconds) if math.isfinite(seconds) else None
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())


def encode_form(data: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested dicts/lists into Stripe's bracketed form encoding.

    ``{"line_items": [{"price": "p"}]}`` becomes ``[("line_items[0][price]", "p")]``.
    ``None`` values are dropped; booleans are sent as ``"true"``/``"false"``.
    """
    pairs: list[tuple[str, str]] = []
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, list):
            for index, entry in enumerate(value):
                entry_name = f"{name}[{index}]"
                if isinstance(entry, dict):
                    pairs.extend(encode_form(entry, entry_name))
                else:
                    pairs.append((entry_name, str(entry)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return resp.text[:200]


class StripeClient(PaymentProvider):
    """Payment provider backed by the Stripe REST API v1.

    Stripe authenticates with the secret key as the Basic-auth username
    and takes form-encoded request bodies.

    Usage::

        config = ProviderConfig(api_key="sk_test_xxx")
        async with StripeClient(config) as stripe:
            subscription = await stripe.get_subscription("sub_123")
    """

    DEFAULT_BASE_URL = "https://api.stripe.com/v1"

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def connect(self) -> None:
        """Open the HTTP client with Stripe-specific auth."""
        if not self._config.api_key:
            raise ConfigurationError("Stripe API key is not configured")
        base_url = self._config.base_url or self.DEFAULT_BASE_URL
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=httpx.BasicAuth(username=self._config.api_key, password=""),
            headers={
                "Accept": "application/json",
                **self._config.extra_headers,
            },
            timeout=self._config.timeout,
        )
        logger.info("provider.connected", provider="stripe", base_url=base_url)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("provider.closed", provider="stripe")

    async def __aenter__(self) -> StripeClient:
        await self.connect()
        return self

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            raise RuntimeError(
                f"{type(self).__name__} is not connected. Call connect() first."
            )
        return self._client

    # -- transport ----------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: list[tuple[str, str]] | None = None,
        data: list[tuple[str, str]] | None = None,
    ) -> dict[str, Any]:
        client = self._ensure_connected()
        operation = f"stripe {method} {path}"
        try:
            resp = await with_timeout(
                client.request(method, path, params=params, data=data),
                self._config.timeout,
                operation=operation,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeoutError(
                f"{operation} timed out", code="upstream_timeout", status_code=504
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("provider.transport_error", operation=operation, error=str(exc))
            raise UpstreamError(
                f"{operation} failed: {exc}", code="upstream_error", status_code=502
            ) from exc

        if resp.is_success:
            result: dict[str, Any] = resp.json()
            return result

        message = _error_message(resp)
        status = resp.status_code
        logger.warning("provider.http_error", operation=operation, status=status, message=message)
        error: CaremeterError
        if status == 404:
            error = NotFoundError(message, code="provider_not_found", status_code=404)
        elif status == 400:
            error = ValidationError(message, code="provider_rejected", status_code=400)
        elif status in (401, 403):
            error = ConfigurationError(message, code="provider_auth", status_code=500)
        else:
            error = UpstreamError(
                message,
                code="upstream_error",
                status_code=502,
                retry_after=parse_retry_after(resp.headers.get("Retry-After")),
            )
        error.details["provider_status"] = status
        raise error

    async def _get(
        self, path: str, params: list[tuple[str, str]] | None = None
    ) -> dict[str, Any]:
        return await self._config.retry.execute(self._send, "GET", path, params=params)

    async def _post(self, path: str, data: dict[str, Any]) -> dict[str, Any]:
        # Writes are not retried: a timed-out create may still have succeeded.
        return await self._send("POST", path, data=encode_form(data))

    # -- PaymentProvider ----------------------------------------------------

    async def get_subscription(self, subscription_id: str) -> dict[str, Any]:
        return await self._get(f"/subscriptions/{subscription_id}")

    async def get_checkout_session(self, session_id: str) -> dict[str, Any]:
        return await self._get(
            f"/checkout/sessions/{session_id}",
            params=[("expand[]", "subscription")],
        )

    async def create_customer(
        self,
        *,
        email: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        return await self._post("/customers", {"email": email, "metadata": metadata})

    async def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        trial_period_days: int | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        subscription_data: dict[str, Any] = {"metadata": metadata}
        if trial_period_days:
            subscription_data["trial_period_days"] = trial_period_days
        return await self._post(
            "/checkout/sessions",
            {
                "customer": customer_id,
                "mode": "subscription",
                "payment_method_types": ["card"],
                "allow_promotion_codes": True,
                "line_items": [{"price": price_id, "quantity": 1}],
                "success_url": success_url,
                "cancel_url": cancel_url,
                "subscription_data": subscription_data,
                "metadata": metadata,
            },
        )

    async def create_portal_session(
        self,
        *,
        customer_id: str,
        return_url: str,
    ) -> dict[str, Any]:
        return await self._post(
            "/billing_portal/sessions",
            {"customer": customer_id, "return_url": return_url},
        )
