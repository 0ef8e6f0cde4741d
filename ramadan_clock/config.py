from __future__ import annotations

import os
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class AladhanProfile:
    base_url: str
    country: str
    method: int
    school: int
    timezone: str
    timeout_seconds: float
    max_retries: int
    retry_base_delay: float


@dataclass(frozen=True)
class RateLimitProfile:
    capacity: float
    refill_rate: float
    min_wait: float
    batch_size: int
    inter_request_delay: float
    inter_district_delay: float
    max_concurrent_districts: int


DEFAULT_ALADHAN_PROFILE = AladhanProfile(
    base_url="https://api.aladhan.com/v1",
    country="Bangladesh",
    method=1,
    school=1,
    timezone="Asia/Dhaka",
    timeout_seconds=10.0,
    max_retries=3,
    retry_base_delay=1.0,
)

DEFAULT_RATE_LIMIT_PROFILE = RateLimitProfile(
    capacity=10,
    refill_rate=2.0,
    min_wait=0.1,
    batch_size=50,
    inter_request_delay=0.1,
    inter_district_delay=0.2,
    max_concurrent_districts=5,
)

RATE_LIMIT_PRESETS: dict[str, RateLimitProfile] = {
    "conservative": RateLimitProfile(
        capacity=3,
        refill_rate=0.5,
        min_wait=1.0,
        batch_size=10,
        inter_request_delay=1.0,
        inter_district_delay=2.0,
        max_concurrent_districts=1,
    ),
    "balanced": RateLimitProfile(
        capacity=5,
        refill_rate=1.0,
        min_wait=0.5,
        batch_size=25,
        inter_request_delay=0.5,
        inter_district_delay=1.0,
        max_concurrent_districts=3,
    ),
    "aggressive": RateLimitProfile(
        capacity=10,
        refill_rate=2.0,
        min_wait=0.2,
        batch_size=50,
        inter_request_delay=0.2,
        inter_district_delay=0.5,
        max_concurrent_districts=5,
    ),
    "fast": DEFAULT_RATE_LIMIT_PROFILE,
    "turbo": RateLimitProfile(
        capacity=20,
        refill_rate=5.0,
        min_wait=0.05,
        batch_size=100,
        inter_request_delay=0.0,
        inter_district_delay=0.1,
        max_concurrent_districts=10,
    ),
}


@dataclass(frozen=True)
class Settings:
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    database_path: str = "./data/ramadan.db"

    enable_scheduler: bool = True
    sync_interval_hours: int = 24

    provider_kind: str = "aladhan"

    aladhan: AladhanProfile = DEFAULT_ALADHAN_PROFILE
    rate_limit: RateLimitProfile = DEFAULT_RATE_LIMIT_PROFILE


def _as_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    return int(raw)


def _as_float(raw: str | None, default: float) -> float:
    if raw is None:
        return default
    return float(raw)


def check_rate_limit(profile: RateLimitProfile) -> RateLimitProfile:
    if profile.capacity <= 0 or profile.refill_rate <= 0:
        raise ValueError("capacity and refill_rate must be positive")
    if profile.min_wait < 0 or profile.inter_request_delay < 0 or profile.inter_district_delay < 0:
        raise ValueError("min_wait and delays must not be negative")
    if profile.batch_size < 1 or profile.max_concurrent_districts < 1:
        raise ValueError("batch_size and max_concurrent_districts must be at least 1")
    return profile


def resolve_rate_limit(preset: str | None, overrides: dict | None = None) -> RateLimitProfile:
    """Pick a named preset (or the default profile) and apply snake_case field overrides."""
    if preset is None:
        profile = DEFAULT_RATE_LIMIT_PROFILE
    elif preset in RATE_LIMIT_PRESETS:
        profile = RATE_LIMIT_PRESETS[preset]
    else:
        raise ValueError(f"Unknown rate limit preset: {preset}")

    if overrides:
        unknown = set(overrides) - set(RateLimitProfile.__dataclass_fields__)
        if unknown:
            raise ValueError(f"Unknown rate limit fields: {', '.join(sorted(unknown))}")
        profile = check_rate_limit(replace(profile, **overrides))
    return profile


def load_settings() -> Settings:
    defaults = DEFAULT_ALADHAN_PROFILE
    aladhan = AladhanProfile(
        base_url=os.getenv("ALADHAN_BASE_URL", defaults.base_url).rstrip("/"),
        country=os.getenv("ALADHAN_COUNTRY", defaults.country),
        method=_as_int(os.getenv("ALADHAN_METHOD"), defaults.method),
        school=_as_int(os.getenv("ALADHAN_SCHOOL"), defaults.school),
        timezone=os.getenv("ALADHAN_TIMEZONE", defaults.timezone),
        timeout_seconds=_as_float(os.getenv("ALADHAN_TIMEOUT_SECONDS"), defaults.timeout_seconds),
        max_retries=_as_int(os.getenv("ALADHAN_MAX_RETRIES"), defaults.max_retries),
        retry_base_delay=_as_float(os.getenv("ALADHAN_RETRY_BASE_DELAY"), defaults.retry_base_delay),
    )

    limits = DEFAULT_RATE_LIMIT_PROFILE
    rate_limit = RateLimitProfile(
        capacity=_as_float(os.getenv("RATE_LIMIT_CAPACITY"), limits.capacity),
        refill_rate=_as_float(os.getenv("RATE_LIMIT_REFILL_RATE"), limits.refill_rate),
        min_wait=_as_float(os.getenv("RATE_LIMIT_MIN_WAIT"), limits.min_wait),
        batch_size=_as_int(os.getenv("FETCH_BATCH_SIZE"), limits.batch_size),
        inter_request_delay=_as_float(
            os.getenv("FETCH_INTER_REQUEST_DELAY"), limits.inter_request_delay
        ),
        inter_district_delay=_as_float(
            os.getenv("FETCH_INTER_DISTRICT_DELAY"), limits.inter_district_delay
        ),
        max_concurrent_districts=_as_int(
            os.getenv("FETCH_MAX_CONCURRENT_DISTRICTS"), limits.max_concurrent_districts
        ),
    )
    check_rate_limit(rate_limit)

    return Settings(
        app_host=os.getenv("APP_HOST", "0.0.0.0"),
        app_port=_as_int(os.getenv("APP_PORT"), 8000),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        database_path=os.getenv("DATABASE_PATH", "./data/ramadan.db"),
        enable_scheduler=_as_bool(os.getenv("ENABLE_SCHEDULER"), True),
        sync_interval_hours=_as_int(os.getenv("SYNC_INTERVAL_HOURS"), 24),
        provider_kind=os.getenv("PROVIDER_KIND", "aladhan"),
        aladhan=aladhan,
        rate_limit=rate_limit,
    )
