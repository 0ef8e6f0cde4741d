from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Awaitable, Callable

from ramadan_clock.config import RateLimitProfile


@dataclass(frozen=True)
class TokenBucketConfig:
    capacity: float = 5
    refill_rate: float = 0.2
    min_wait: float = 1.0

    @classmethod
    def from_profile(cls, profile: RateLimitProfile) -> "TokenBucketConfig":
        return cls(
            capacity=profile.capacity,
            refill_rate=profile.refill_rate,
            min_wait=profile.min_wait,
        )


@dataclass(frozen=True)
class TokenBucketStats:
    current_tokens: float
    capacity: float
    refill_rate: float
    min_wait: float
    total_requests: int
    total_wait_time: float

    @property
    def average_wait_time(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_wait_time / self.total_requests


class TokenBucketRateLimiter:
    """Token bucket shared by every outbound upstream request.

    Refill happens lazily on each acquisition from the elapsed monotonic
    time, so no background timer is needed. Grants are serialized through
    an ``asyncio.Lock``; a waiter holds the lock while it sleeps, which keeps
    later callers queued behind it in arrival order.
    """

    # Upper bound on a single sleep so config updates are noticed mid-wait.
    max_poll_interval: float = 1.0

    def __init__(
        self,
        config: TokenBucketConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if config.capacity <= 0 or config.refill_rate <= 0:
            raise ValueError("capacity and refill_rate must be positive")
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger("ramadan.ratelimit")

        self._tokens = float(config.capacity)
        self._last_refill = clock()
        self._total_requests = 0
        self._total_wait_time = 0.0

        self._logger.info(
            "Token bucket initialized capacity=%s refill_rate=%s/s min_wait=%ss",
            config.capacity,
            config.refill_rate,
            config.min_wait,
        )

    @property
    def config(self) -> TokenBucketConfig:
        return self._config

    def _refilled(self, now: float) -> float:
        elapsed = max(now - self._last_refill, 0.0)
        return min(float(self._config.capacity), self._tokens + elapsed * self._config.refill_rate)

    def _refill(self) -> None:
        now = self._clock()
        self._tokens = self._refilled(now)
        self._last_refill = now

    async def acquire_token(self) -> None:
        async with self._lock:
            started = self._clock()
            self._refill()

            while self._tokens < 1:
                needed = 1 - self._tokens
                wait = max(needed / self._config.refill_rate, self._config.min_wait)
                wait = min(wait, self.max_poll_interval)
                self._logger.debug("Waiting %.3fs for token (have %.2f)", wait, self._tokens)
                await self._sleep(wait)
                self._refill()

            self._tokens -= 1
            self._total_requests += 1
            waited = self._clock() - started
            self._total_wait_time += waited
            self._logger.debug(
                "Token acquired after %.3fs, %.2f remaining", waited, self._tokens
            )

    def get_stats(self) -> TokenBucketStats:
        return TokenBucketStats(
            current_tokens=self._refilled(self._clock()),
            capacity=self._config.capacity,
            refill_rate=self._config.refill_rate,
            min_wait=self._config.min_wait,
            total_requests=self._total_requests,
            total_wait_time=self._total_wait_time,
        )

    def update_config(
        self,
        *,
        capacity: float | None = None,
        refill_rate: float | None = None,
        min_wait: float | None = None,
    ) -> TokenBucketConfig:
        changes = {
            key: value
            for key, value in {
                "capacity": capacity,
                "refill_rate": refill_rate,
                "min_wait": min_wait,
            }.items()
            if value is not None
        }
        new_config = replace(self._config, **changes)
        if new_config.capacity <= 0 or new_config.refill_rate <= 0:
            raise ValueError("capacity and refill_rate must be positive")

        # settle tokens earned under the old rate before switching
        self._refill()
        old_config = self._config
        self._config = new_config
        self._tokens = min(self._tokens, float(new_config.capacity))
        self._logger.info("Token bucket config updated %s -> %s", old_config, new_config)
        return new_config

    def reset(self) -> None:
        self._tokens = float(self._config.capacity)
        self._last_refill = self._clock()
        self._total_requests = 0
        self._total_wait_time = 0.0
        self._logger.info("Token bucket reset")


class RateLimiterRegistry:
    """Hands out one limiter per process so concurrent jobs share a single budget."""

    def __init__(self, **limiter_kwargs) -> None:
        self._limiter: TokenBucketRateLimiter | None = None
        self._limiter_kwargs = limiter_kwargs
        self._logger = logging.getLogger("ramadan.ratelimit")

    def get(self, config: TokenBucketConfig | None = None) -> TokenBucketRateLimiter:
        if self._limiter is None:
            if config is None:
                raise ValueError("TokenBucketConfig required on first call")
            self._limiter = TokenBucketRateLimiter(config, **self._limiter_kwargs)
        elif config is not None and config != self._limiter.config:
            self._logger.warning(
                "Ignoring token bucket config %s; shared limiter already uses %s",
                config,
                self._limiter.config,
            )
        return self._limiter

    def reset(self) -> None:
        if self._limiter is not None:
            self._limiter.reset()
        self._limiter = None
