"""Retry policy with exponential backoff and jitter for provider reads."""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, TypeVar

import structlog
from pydantic import BaseModel, Field

from caremeter.core.exceptions import CaremeterError

logger = structlog.get_logger(__name__)

_T = TypeVar("_T")


class RetryPolicy(BaseModel):
    """Configurable retry policy with exponential backoff.

    Only errors whose ``is_retryable`` is true are retried; everything
    else propagates on the first attempt.

    Attributes:
        max_retries: Maximum number of retry attempts (0 = no retries).
        backoff_base: Base delay in seconds for exponential backoff.
        backoff_max: Maximum delay in seconds (caps the exponential growth).
        jitter: If ``True``, add random jitter to the backoff delay.
    """

    max_retries: int = Field(default=2, ge=0, le=10)
    backoff_base: float = Field(default=0.5, ge=0.0)
    backoff_max: float = Field(default=4.0, ge=0.0)
    jitter: bool = True

    @staticmethod
    def _is_retryable(exc: Exception) -> bool:
        return isinstance(exc, CaremeterError) and exc.is_retryable

    def _compute_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """Backoff delay for *attempt* (0-indexed).

        ``backoff_base * 2^attempt`` capped at ``backoff_max``, with
        optional jitter.  A provider ``Retry-After`` hint is a floor,
        still capped at ``backoff_max``.
        """
        delay: float = min(self.backoff_base * (2 ** attempt), self.backoff_max)
        if self.jitter:
            delay = random.uniform(0, delay)  # noqa: S311
        if retry_after:
            delay = max(delay, min(retry_after, self.backoff_max))
        return delay

    async def execute(
        self,
        fn: Callable[..., Awaitable[_T]],
        *args: Any,
        **kwargs: Any,
    ) -> _T:
        """Execute *fn* with retry logic.

        Raises:
            Exception: The last exception raised by *fn* if all retries are
                exhausted, or immediately if the exception is not retryable.
        """
        for attempt in range(1 + self.max_retries):
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                if not self._is_retryable(exc) or attempt >= self.max_retries:
                    raise

                delay = self._compute_delay(attempt, getattr(exc, "retry_after", None))
                logger.info(
                    "retry.scheduled",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay=round(delay, 3),
                    error=str(exc),
                )
                await asyncio.sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover
