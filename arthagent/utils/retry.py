from __future__ import annotations

import asyncio
import random

import httpx

from ..errors import TransientError


def compute_backoff(
    attempt: int, base: float = 1.5, jitter: float = 0.5, max_delay: float | None = None
) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay + random.uniform(0, jitter)


async def schedule_retry(
    attempt: int, base: float = 1.5, jitter: float = 0.5, max_delay: float | None = None
) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, base=base, jitter=jitter, max_delay=max_delay)
    await asyncio.sleep(delay)


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` is worth another attempt.

    Timeouts, connection failures and errors carrying a 429 or 5xx status code
    (as raised by HTTP-backed model providers) are transient. Everything else
    is treated as a permanent failure.
    """
    if isinstance(exc, TransientError):
        return exc.status_code is None or _retryable_status(exc.status_code)
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return _retryable_status(exc.response.status_code)
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return _retryable_status(status_code)
    return False


def _retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500
