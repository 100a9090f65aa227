"""Tests for the exception hierarchy."""
from __future__ import annotations

import pytest

from caremeter.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CaremeterError,
    ConfigurationError,
    DataStoreError,
    NotFoundError,
    SignatureError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)

ALL_ERRORS = [
    ConfigurationError,
    ValidationError,
    NotFoundError,
    AuthenticationError,
    AuthorizationError,
    SignatureError,
    UpstreamError,
    UpstreamTimeoutError,
    DataStoreError,
]


@pytest.mark.parametrize("exc_type", ALL_ERRORS)
def test_all_errors_share_base(exc_type: type[CaremeterError]) -> None:
    exc = exc_type("boom")
    assert isinstance(exc, CaremeterError)
    assert str(exc) == "boom"


def test_base_attributes_default() -> None:
    exc = CaremeterError("boom")
    assert exc.code is None
    assert exc.details == {}
    assert exc.status_code is None
    assert exc.retry_after is None


def test_base_attributes_set() -> None:
    exc = NotFoundError(
        "missing",
        code="nothing_to_sync",
        details={"account_id": "acct_1"},
        status_code=400,
    )
    assert exc.code == "nothing_to_sync"
    assert exc.details == {"account_id": "acct_1"}
    assert exc.status_code == 400


def test_timeout_is_upstream_error() -> None:
    assert issubclass(UpstreamTimeoutError, UpstreamError)


@pytest.mark.parametrize("exc_type", [UpstreamError, UpstreamTimeoutError, DataStoreError])
def test_retryable_errors(exc_type: type[CaremeterError]) -> None:
    assert exc_type("x").is_retryable is True


@pytest.mark.parametrize(
    "exc_type",
    [
        ConfigurationError,
        ValidationError,
        NotFoundError,
        AuthenticationError,
        AuthorizationError,
        SignatureError,
    ],
)
def test_non_retryable_errors(exc_type: type[CaremeterError]) -> None:
    assert exc_type("x").is_retryable is False


def test_details_are_not_shared_between_instances() -> None:
    first = UpstreamError("a")
    first.details["provider_status"] = 500
    assert UpstreamError("b").details == {}
