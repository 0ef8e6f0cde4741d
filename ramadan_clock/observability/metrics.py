from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class Metrics:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry(auto_describe=True)
        self.upstream_requests_total = Counter(
            "ramadan_upstream_requests_total",
            "Requests sent to the prayer-time API by endpoint and outcome",
            labelnames=("endpoint", "outcome"),
            registry=self.registry,
        )
        self.cache_lookups_total = Counter(
            "ramadan_cache_lookups_total",
            "Result cache lookups by result",
            labelnames=("result",),
            registry=self.registry,
        )
        self.fetch_jobs_total = Counter(
            "ramadan_fetch_jobs_total",
            "Fetch jobs by terminal status",
            labelnames=("mode", "status"),
            registry=self.registry,
        )
        self.fetch_job_duration_seconds = Histogram(
            "ramadan_fetch_job_duration_seconds",
            "Duration of fetch jobs in seconds",
            buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800),
            registry=self.registry,
        )
        self.entries_upserted_total = Counter(
            "ramadan_entries_upserted_total",
            "Schedule entries written to storage by operation",
            labelnames=("operation",),
            registry=self.registry,
        )
        self.rate_limiter_tokens = Gauge(
            "ramadan_rate_limiter_tokens",
            "Tokens available in the shared rate limiter at last observation",
            registry=self.registry,
        )

    def mark_upstream_request(self, endpoint: str, outcome: str) -> None:
        self.upstream_requests_total.labels(endpoint=endpoint, outcome=outcome).inc()

    def mark_cache(self, *, hit: bool) -> None:
        self.cache_lookups_total.labels(result="hit" if hit else "miss").inc()

    def mark_fetch_job(self, mode: str, status: str, duration_seconds: float) -> None:
        self.fetch_jobs_total.labels(mode=mode, status=status).inc()
        self.fetch_job_duration_seconds.observe(duration_seconds)

    def mark_upsert(self, created: int, updated: int) -> None:
        self.entries_upserted_total.labels(operation="created").inc(created)
        self.entries_upserted_total.labels(operation="updated").inc(updated)

    def render(self) -> tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST
