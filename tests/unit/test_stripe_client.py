"""Tests for provider/stripe_client.py — Stripe REST client over httpx.

Uses httpx.MockTransport so no network access is needed.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest

from caremeter.core.exceptions import (
    ConfigurationError,
    NotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from caremeter.provider.base import ProviderConfig
from caremeter.provider.stripe_client import StripeClient, encode_form, parse_retry_after
from caremeter.resilience.retry import RetryPolicy

BASE_URL = "https://api.stripe.test/v1"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_client(max_retries: int = 0) -> StripeClient:
    return StripeClient(
        ProviderConfig(
            api_key="sk_test_123",
            base_url=BASE_URL,
            timeout=2.0,
            retry=RetryPolicy(max_retries=max_retries, backoff_base=0.0, jitter=False),
        )
    )


def _attach_mock_client(
    client: StripeClient,
    responses: list[httpx.Response] | httpx.Response,
    seen: list[httpx.Request],
) -> None:
    """Attach a mock httpx client that replays *responses* in order."""
    queue = list(responses) if isinstance(responses, list) else [responses]

    async def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        canned = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(canned.status_code, content=canned.content, headers=canned.headers)

    client._client = httpx.AsyncClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(_handler),
        auth=httpx.BasicAuth(username="sk_test_123", password=""),
    )


def _error(status: int, message: str = "boom", **headers: str) -> httpx.Response:
    return httpx.Response(
        status, json={"error": {"type": "api_error", "message": message}}, headers=headers
    )


# ---------------------------------------------------------------------------
# encode_form
# ---------------------------------------------------------------------------


def test_encode_form_flattens_nested_structures() -> None:
    pairs = encode_form(
        {
            "customer": "cus_1",
            "line_items": [{"price": "price_1", "quantity": 1}],
            "subscription_data": {"metadata": {"account_id": "acct_1"}, "trial_period_days": 7},
            "allow_promotion_codes": True,
            "payment_method_types": ["card"],
            "email": None,
        }
    )
    assert pairs == [
        ("customer", "cus_1"),
        ("line_items[0][price]", "price_1"),
        ("line_items[0][quantity]", "1"),
        ("subscription_data[metadata][account_id]", "acct_1"),
        ("subscription_data[trial_period_days]", "7"),
        ("allow_promotion_codes", "true"),
        ("payment_method_types[0]", "card"),
    ]


def test_encode_form_empty() -> None:
    assert encode_form({}) == []


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def test_request_before_connect_raises() -> None:
    with pytest.raises(RuntimeError, match="not connected"):
        await _make_client().get_subscription("sub_1")


async def test_connect_without_api_key_raises() -> None:
    with pytest.raises(ConfigurationError):
        await StripeClient(ProviderConfig()).connect()


async def test_context_manager_opens_and_closes() -> None:
    async with _make_client() as client:
        assert client._client is not None
    assert client._client is None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def test_get_subscription() -> None:
    client = _make_client()
    seen: list[httpx.Request] = []
    _attach_mock_client(client, httpx.Response(200, json={"id": "sub_1", "status": "active"}), seen)

    sub = await client.get_subscription("sub_1")

    assert sub == {"id": "sub_1", "status": "active"}
    assert seen[0].method == "GET"
    assert seen[0].url.path == "/v1/subscriptions/sub_1"
    assert seen[0].headers["authorization"].startswith("Basic ")


async def test_get_checkout_session_expands_subscription() -> None:
    client = _make_client()
    seen: list[httpx.Request] = []
    _attach_mock_client(client, httpx.Response(200, json={"id": "cs_1"}), seen)

    await client.get_checkout_session("cs_1")

    assert seen[0].url.path == "/v1/checkout/sessions/cs_1"
    assert seen[0].url.params.get_list("expand[]") == ["subscription"]


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("status", "exc_type"),
    [
        (404, NotFoundError),
        (400, ValidationError),
        (401, ConfigurationError),
        (403, ConfigurationError),
        (500, UpstreamError),
        (503, UpstreamError),
    ],
)
async def test_http_errors_are_mapped(status: int, exc_type: type[Exception]) -> None:
    client = _make_client()
    _attach_mock_client(client, _error(status, "No such subscription"), [])

    with pytest.raises(exc_type) as exc_info:
        await client.get_subscription("sub_1")

    assert str(exc_info.value) == "No such subscription"
    assert exc_info.value.details["provider_status"] == status  # type: ignore[attr-defined]


@pytest.mark.parametrize("status", [401, 403])
async def test_rejected_api_key_is_a_configuration_fault(status: int) -> None:
    client = _make_client()
    _attach_mock_client(client, _error(status, "Invalid API Key provided"), [])

    with pytest.raises(ConfigurationError) as exc_info:
        await client.get_subscription("sub_1")

    assert exc_info.value.code == "provider_auth"
    assert exc_info.value.status_code == 500
    assert not exc_info.value.is_retryable


async def test_rate_limit_carries_retry_after() -> None:
    client = _make_client()
    _attach_mock_client(client, _error(429, "Too many requests", **{"Retry-After": "3"}), [])

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_subscription("sub_1")

    assert exc_info.value.retry_after == 3.0
    assert exc_info.value.status_code == 502


async def test_http_date_retry_after_stays_an_upstream_error() -> None:
    client = _make_client()
    _attach_mock_client(
        client, _error(503, "Unavailable", **{"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}), []
    )

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_subscription("sub_1")

    assert exc_info.value.is_retryable
    assert exc_info.value.retry_after == 0.0


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        (None, None),
        ("", None),
        ("5", 5.0),
        (" 1.5 ", 1.5),
        ("-2", 0.0),
        ("inf", None),
        ("soon", None),
        ("Wed, 21 Oct 2026 07:28:30 GMT", 30.0),
        ("Wed, 21 Oct 2026 07:27:00 GMT", 0.0),
    ],
)
def test_parse_retry_after(header: str | None, expected: float | None) -> None:
    now = datetime(2026, 10, 21, 7, 28, tzinfo=timezone.utc)
    assert parse_retry_after(header, now=now) == expected


async def test_non_json_error_body() -> None:
    client = _make_client()
    _attach_mock_client(client, httpx.Response(502, text="Bad Gateway"), [])

    with pytest.raises(UpstreamError, match="Bad Gateway"):
        await client.get_subscription("sub_1")


async def test_transport_timeout_becomes_upstream_timeout() -> None:
    client = _make_client()

    async def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    client._client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(_handler))

    with pytest.raises(UpstreamTimeoutError) as exc_info:
        await client.get_subscription("sub_1")

    assert exc_info.value.status_code == 504


async def test_connection_error_becomes_upstream_error() -> None:
    client = _make_client()

    async def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client._client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(_handler))

    with pytest.raises(UpstreamError) as exc_info:
        await client.get_subscription("sub_1")

    assert not isinstance(exc_info.value, UpstreamTimeoutError)
    assert exc_info.value.status_code == 502


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


async def test_reads_retry_upstream_errors() -> None:
    client = _make_client(max_retries=2)
    seen: list[httpx.Request] = []
    _attach_mock_client(
        client,
        [_error(500), _error(500), httpx.Response(200, json={"id": "sub_1"})],
        seen,
    )

    sub = await client.get_subscription("sub_1")

    assert sub["id"] == "sub_1"
    assert len(seen) == 3


async def test_reads_give_up_after_max_retries() -> None:
    client = _make_client(max_retries=1)
    seen: list[httpx.Request] = []
    _attach_mock_client(client, _error(500), seen)

    with pytest.raises(UpstreamError):
        await client.get_subscription("sub_1")

    assert len(seen) == 2


async def test_not_found_is_not_retried() -> None:
    client = _make_client(max_retries=3)
    seen: list[httpx.Request] = []
    _attach_mock_client(client, _error(404), seen)

    with pytest.raises(NotFoundError):
        await client.get_subscription("sub_1")

    assert len(seen) == 1


async def test_writes_are_not_retried() -> None:
    client = _make_client(max_retries=3)
    seen: list[httpx.Request] = []
    _attach_mock_client(client, _error(500), seen)

    with pytest.raises(UpstreamError):
        await client.create_customer(email="a@example.com")

    assert len(seen) == 1


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def test_create_customer_posts_form() -> None:
    client = _make_client()
    seen: list[httpx.Request] = []
    _attach_mock_client(client, httpx.Response(200, json={"id": "cus_1"}), seen)

    customer = await client.create_customer(
        email="carer@example.com", metadata={"account_id": "acct_1"}
    )

    assert customer["id"] == "cus_1"
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/v1/customers"
    form = dict(parse_qsl(seen[0].content.decode()))
    assert form == {"email": "carer@example.com", "metadata[account_id]": "acct_1"}


async def test_create_checkout_session_posts_subscription_checkout() -> None:
    client = _make_client()
    seen: list[httpx.Request] = []
    _attach_mock_client(
        client, httpx.Response(200, json={"id": "cs_1", "url": "https://checkout"}), seen
    )

    session = await client.create_checkout_session(
        customer_id="cus_1",
        price_id="price_essential",
        success_url="https://app/ok",
        cancel_url="https://app/cancel",
        trial_period_days=7,
        metadata={"account_id": "acct_1"},
    )

    assert session["id"] == "cs_1"
    assert seen[0].url.path == "/v1/checkout/sessions"
    form = dict(parse_qsl(seen[0].content.decode()))
    assert form["mode"] == "subscription"
    assert form["customer"] == "cus_1"
    assert form["line_items[0][price]"] == "price_essential"
    assert form["line_items[0][quantity]"] == "1"
    assert form["subscription_data[trial_period_days]"] == "7"
    assert form["subscription_data[metadata][account_id]"] == "acct_1"
    assert form["allow_promotion_codes"] == "true"


async def test_create_checkout_session_without_trial() -> None:
    client = _make_client()
    seen: list[httpx.Request] = []
    _attach_mock_client(client, httpx.Response(200, json={"id": "cs_1"}), seen)

    await client.create_checkout_session(
        customer_id="cus_1",
        price_id="price_essential",
        success_url="https://app/ok",
        cancel_url="https://app/cancel",
    )

    form = dict(parse_qsl(seen[0].content.decode()))
    assert "subscription_data[trial_period_days]" not in form


async def test_create_portal_session() -> None:
    client = _make_client()
    seen: list[httpx.Request] = []
    _attach_mock_client(client, httpx.Response(200, json={"url": "https://portal"}), seen)

    session = await client.create_portal_session(customer_id="cus_1", return_url="https://app")

    assert session["url"] == "https://portal"
    assert seen[0].url.path == "/v1/billing_portal/sessions"
    assert dict(parse_qsl(seen[0].content.decode())) == {
        "customer": "cus_1",
        "return_url": "https://app",
    }
