from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

import httpx

from ramadan_clock.fetching.errors import AladhanApiError

T = TypeVar("T")

_logger = logging.getLogger("ramadan.retry")

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


class RetryableStatusError(AladhanApiError):
    def __init__(self, status_code: int, retry_after: float | None = None) -> None:
        super().__init__(f"HTTP {status_code} from upstream API", status_code=status_code)
        self.retry_after = retry_after


def compute_delay(attempt: int, base_delay: float, max_delay: float = 30.0) -> float:
    """Exponential backoff for 0-based ``attempt``, capped at ``max_delay``."""
    if base_delay <= 0:
        return 0.0
    return min(base_delay * (2**attempt), max_delay)


def parse_retry_after(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return max(float(raw.strip()), 0.0)
    except ValueError:
        return None


def raise_for_retryable_status(response: httpx.Response) -> None:
    if response.status_code in RETRYABLE_STATUSES:
        raise RetryableStatusError(
            response.status_code,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    response.raise_for_status()


async def retry_async(
    call: Callable[[], Awaitable[T]],
    *,
    retries: int,
    base_delay: float,
    max_delay: float = 30.0,
    jitter: float = 0.2,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "request",
) -> T:
    """Run ``call`` once plus up to ``retries`` more times on transport/API errors."""
    attempt = 0
    while True:
        try:
            return await call()
        except (httpx.HTTPError, AladhanApiError) as exc:
            if attempt >= retries:
                raise

            delay = compute_delay(attempt, base_delay, max_delay)
            if isinstance(exc, RetryableStatusError) and exc.status_code == 429:
                delay = min(max(exc.retry_after or 0.0, delay) * 3, max_delay)
            if jitter and delay:
                delay += random.uniform(0, jitter * delay)

            _logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                description,
                attempt + 1,
                retries + 1,
                exc,
                delay,
            )
            await sleep(delay)
            attempt += 1
