from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from ramadan_clock.config import AladhanProfile, RateLimitProfile, Settings
from ramadan_clock.core.models import PrayerTimeEntry
from ramadan_clock.fetching.cache import ResultCache
from ramadan_clock.fetching.rate_limiter import TokenBucketConfig, TokenBucketRateLimiter
from ramadan_clock.providers.aladhan_api import AladhanClient

BASE_URL = "https://api.aladhan.test/v1"


def aladhan_profile(max_retries: int = 0) -> AladhanProfile:
    return AladhanProfile(
        base_url=BASE_URL,
        country="Bangladesh",
        method=1,
        school=1,
        timezone="Asia/Dhaka",
        timeout_seconds=5.0,
        max_retries=max_retries,
        retry_base_delay=0.0,
    )


def fast_limits(max_concurrent_districts: int = 5) -> RateLimitProfile:
    return RateLimitProfile(
        capacity=100_000,
        refill_rate=100_000.0,
        min_wait=0.0,
        batch_size=50,
        inter_request_delay=0.0,
        inter_district_delay=0.0,
        max_concurrent_districts=max_concurrent_districts,
    )


def make_settings(database_path: str, **overrides) -> Settings:
    values = dict(
        enable_scheduler=False,
        database_path=database_path,
        aladhan=aladhan_profile(),
        rate_limit=fast_limits(),
    )
    values.update(overrides)
    return Settings(**values)


def timings_payload(fajr: str = "04:58 (+06)", maghrib: str = "18:10 (+06)") -> dict:
    return {
        "code": 200,
        "status": "OK",
        "data": {
            "timings": {
                "Fajr": fajr,
                "Dhuhr": "12:10 (+06)",
                "Asr": "15:30 (+06)",
                "Maghrib": maghrib,
                "Isha": "19:25 (+06)",
            },
            "date": {"readable": "01 Mar 2026", "timestamp": "1772323200"},
            "meta": {"timezone": "Asia/Dhaka"},
        },
    }


def hijri_payload(gregorian_dates: list[str]) -> dict:
    return {
        "code": 200,
        "status": "OK",
        "data": [
            {
                "timings": {"Fajr": "4:50 (+06)", "Maghrib": "18:05 (+06)"},
                "date": {"gregorian": {"date": value}},
            }
            for value in gregorian_dates
        ],
    }


@dataclass
class FakeAladhan:
    """Callable MockTransport handler that records every upstream request."""

    fajr: str = "04:58 (+06)"
    maghrib: str = "18:10 (+06)"
    failing_days: set[tuple[str, str]] = field(default_factory=set)
    failing_cities: set[str] = field(default_factory=set)
    hijri_days: list[str] = field(default_factory=lambda: ["01-03-2026", "02-03-2026", "03-03-2026"])
    calls: list[tuple[str, str]] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        city = request.url.params["city"]
        parts = request.url.path.strip("/").split("/")
        endpoint = parts[1]
        key = "/".join(parts[2:])
        self.calls.append((city, key))

        if city in self.failing_cities:
            return httpx.Response(200, json={"code": 400, "status": "BAD_REQUEST", "data": "Unable to locate city"})

        if endpoint == "timingsByCity":
            if (city, key) in self.failing_days:
                return httpx.Response(200, json={"code": 400, "status": "BAD_REQUEST", "data": "bad date"})
            return httpx.Response(200, json=timings_payload(self.fajr, self.maghrib))

        if endpoint == "hijriCalendarByCity":
            return httpx.Response(200, json=hijri_payload(self.hijri_days))

        return httpx.Response(404, json={"code": 404, "status": "NOT_FOUND"})

    def cities_in_order(self) -> list[str]:
        return [city for city, _ in self.calls]


def make_client(
    handler,
    *,
    max_retries: int = 0,
    cache: ResultCache | None = None,
    limiter: TokenBucketRateLimiter | None = None,
) -> AladhanClient:
    return AladhanClient(
        profile=aladhan_profile(max_retries=max_retries),
        rate_limiter=limiter or TokenBucketRateLimiter(TokenBucketConfig(capacity=100_000, refill_rate=100_000, min_wait=0)),
        cache=cache if cache is not None else ResultCache(),
        transport=httpx.MockTransport(handler),
    )


def sample_entries() -> list[PrayerTimeEntry]:
    return [
        PrayerTimeEntry(date="2026-03-01", sehri="04:58", iftar="18:10", location="Dhaka"),
        PrayerTimeEntry(date="2026-03-02", sehri="04:57", iftar="18:11", location="Dhaka"),
        PrayerTimeEntry(date="2026-03-01", sehri="04:52", iftar="18:04", location="Sylhet"),
    ]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
