from __future__ import annotations

from typing import Any


class CaremeterError(Exception):
    """Base exception for all caremeter errors.

    Attributes:
        code: Optional machine-readable error code (e.g. ``"nothing_to_sync"``).
        details: Arbitrary key/value context about the error.
        status_code: HTTP status code to surface to the caller (``None``
            falls back to the default for the exception type).
        retry_after: Suggested delay in seconds before retrying the
            operation (``None`` when unknown or not applicable).
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def is_retryable(self) -> bool:
        """Whether the operation that raised this error can be retried."""
        return False


class ConfigurationError(CaremeterError): ...


class ValidationError(CaremeterError): ...


class NotFoundError(CaremeterError): ...


# ---------------------------------------------------------------------------
# Caller identity
# ---------------------------------------------------------------------------


class AuthenticationError(CaremeterError):
    """No verified caller.  Never retryable."""


class AuthorizationError(CaremeterError):
    """The caller does not own the referenced resource.

    Raised e.g. when a checkout session belongs to a different customer.
    """


class SignatureError(CaremeterError):
    """Webhook payload failed signature verification.

    Security-significant: handlers log it separately from processing
    failures and never retry.
    """


# ---------------------------------------------------------------------------
# Retryable specialisations
# ---------------------------------------------------------------------------


class UpstreamError(CaremeterError):
    """The payment provider call failed.

    Retryable by the caller; the webhook endpoint answers 5xx so the
    provider redelivers.
    """

    @property
    def is_retryable(self) -> bool:  # noqa: D102
        return True


class UpstreamTimeoutError(UpstreamError):
    """The payment provider did not answer within the configured timeout."""


class DataStoreError(CaremeterError):
    """A datastore read or write failed."""

    @property
    def is_retryable(self) -> bool:  # noqa: D102
        return True
