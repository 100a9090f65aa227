from __future__ import annotations

import asyncio
from typing import Any, Coroutine, TypeVar

from caremeter.core.exceptions import UpstreamTimeoutError

T = TypeVar("T")


async def with_timeout(
    coro: Coroutine[Any, Any, T],
    seconds: float,
    *,
    operation: str = "provider call",
) -> T:
    """Run *coro* with a deadline.

    Args:
        coro: The coroutine to run.
        seconds: Maximum number of seconds to wait.
        operation: Human-readable name used in the error message.

    Returns:
        The value returned by *coro*.

    Raises:
        UpstreamTimeoutError: If *coro* does not complete within *seconds*.
    """
    try:
        return await asyncio.wait_for(coro, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeoutError(
            f"{operation} timed out after {seconds:g}s",
            code="upstream_timeout",
            status_code=504,
            details={"operation": operation, "timeout": seconds},
        ) from exc
