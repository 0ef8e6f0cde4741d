from __future__ import annotations

import httpx

from ramadan_clock.config import RateLimitProfile, Settings
from ramadan_clock.fetching.cache import ResultCache
from ramadan_clock.fetching.rate_limiter import TokenBucketRateLimiter
from ramadan_clock.observability.metrics import Metrics
from ramadan_clock.providers.aladhan_api import AladhanClient
from ramadan_clock.providers.base import PrayerTimeProvider


class UnknownProviderError(RuntimeError):
    pass


def build_provider(
    settings: Settings,
    *,
    rate_limiter: TokenBucketRateLimiter,
    cache: ResultCache,
    rate_limit: RateLimitProfile | None = None,
    metrics: Metrics | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PrayerTimeProvider:
    limits = rate_limit or settings.rate_limit
    if settings.provider_kind == "aladhan":
        return AladhanClient(
            profile=settings.aladhan,
            rate_limiter=rate_limiter,
            cache=cache,
            inter_request_delay=limits.inter_request_delay,
            metrics=metrics,
            transport=transport,
        )

    raise UnknownProviderError(f"Unsupported provider kind: {settings.provider_kind}")
