from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from time import perf_counter
from zoneinfo import ZoneInfo

import httpx

from ramadan_clock.config import RateLimitProfile, Settings
from ramadan_clock.core.constants import HIJRI_MONTH_APPROX_DAYS
from ramadan_clock.core.models import FetchRequest, MultiMonthRequest, PrayerTimeEntry
from ramadan_clock.fetching.cache import ResultCache
from ramadan_clock.fetching.errors import FetchCancelledError, FetchJobError, describe_error
from ramadan_clock.fetching.orchestrator import FetchOrchestrator
from ramadan_clock.fetching.rate_limiter import RateLimiterRegistry, TokenBucketConfig, TokenBucketRateLimiter
from ramadan_clock.observability.metrics import Metrics
from ramadan_clock.progress.store import ProgressStore
from ramadan_clock.providers.registry import build_provider
from ramadan_clock.storage.repository import FetchRunResult, ScheduleRepository


class FetchWorker:
    """Runs fetch jobs in the background and, when enabled, a periodic monthly sync."""

    def __init__(
        self,
        *,
        settings: Settings,
        limiters: RateLimiterRegistry,
        cache: ResultCache,
        repository: ScheduleRepository,
        progress: ProgressStore,
        metrics: Metrics,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.limiters = limiters
        self.cache = cache
        self.repository = repository
        self.progress = progress
        self.metrics = metrics
        self.transport = transport

        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._jobs: dict[str, asyncio.Task[FetchRunResult]] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._logger = logging.getLogger("ramadan.worker")

        self.last_run_status: str = "never"
        self.last_run_started_at: datetime | None = None
        self.last_run_finished_at: datetime | None = None
        self.last_error: str | None = None

    @property
    def rate_limiter(self) -> TokenBucketRateLimiter:
        return self.limiters.get(TokenBucketConfig.from_profile(self.settings.rate_limit))

    def build_orchestrator(self, rate_limit: RateLimitProfile | None = None) -> FetchOrchestrator:
        limits = rate_limit or self.settings.rate_limit
        limiter = self.rate_limiter
        provider = build_provider(
            self.settings,
            rate_limiter=limiter,
            cache=self.cache,
            rate_limit=limits,
            metrics=self.metrics,
            transport=self.transport,
        )
        return FetchOrchestrator(provider=provider, rate_limit=limits, rate_limiter=limiter)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="fetch-worker")

    async def stop(self) -> None:
        for event in self._cancel_events.values():
            event.set()
        if self._jobs:
            await asyncio.gather(*self._jobs.values(), return_exceptions=True)

        if self._task is None:
            return
        self._stop_event.set()
        await self._task
        self._task = None

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, request: FetchRequest, rate_limit: RateLimitProfile | None = None) -> str:
        total = 0
        if request.mode == "hijriMonth":
            total = len(request.resolved_districts()) * HIJRI_MONTH_APPROX_DAYS
        self.progress.cleanup()
        operation_id = self.progress.create("fetch", total)
        cancel_event = asyncio.Event()
        self._cancel_events[operation_id] = cancel_event

        task = asyncio.create_task(
            self.run_job(request, operation_id=operation_id, rate_limit=rate_limit, cancel_event=cancel_event),
            name=f"fetch-job-{operation_id}",
        )
        self._jobs[operation_id] = task

        def _forget(_: asyncio.Task) -> None:
            self._jobs.pop(operation_id, None)
            self._cancel_events.pop(operation_id, None)

        task.add_done_callback(_forget)
        return operation_id

    def cancel(self, operation_id: str) -> bool:
        event = self._cancel_events.get(operation_id)
        if event is None:
            return False
        event.set()
        return True

    async def wait(self, operation_id: str) -> FetchRunResult | None:
        task = self._jobs.get(operation_id)
        if task is None:
            return None
        return await task

    async def preview(
        self,
        request: FetchRequest,
        rate_limit: RateLimitProfile | None = None,
    ) -> list[PrayerTimeEntry]:
        return await self.build_orchestrator(rate_limit).fetch(request)

    async def run_job(
        self,
        request: FetchRequest,
        *,
        operation_id: str | None = None,
        rate_limit: RateLimitProfile | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> FetchRunResult:
        started = datetime.now(tz=timezone.utc)
        self.last_run_started_at = started
        timer_start = perf_counter()
        result = FetchRunResult(status="success")

        limits = rate_limit or self.settings.rate_limit
        on_progress = self.progress.callback(operation_id) if operation_id else None
        try:
            entries = await self.build_orchestrator(limits).fetch(
                request, on_progress, cancel_event=cancel_event
            )
            upserted = self.repository.upsert_entries(entries, batch_size=limits.batch_size)
            self.metrics.mark_upsert(upserted.created, upserted.updated)
            result = FetchRunResult(status="success", entries_fetched=len(entries))
            if operation_id:
                self.progress.complete(
                    operation_id,
                    message=f"Saved {upserted.created} new and {upserted.updated} updated entries",
                )
        except FetchCancelledError as exc:
            result = self._failure("cancelled", exc)
            self._logger.warning("Fetch job cancelled: %s", exc)
        except (FetchJobError, httpx.HTTPError) as exc:
            result = self._failure("fetch_error", exc)
            self._logger.exception("Fetch error during job")
        except Exception as exc:  # pragma: no cover
            result = self._failure("unhandled_error", exc)
            self._logger.exception("Unhandled fetch job error")
        finally:
            finished = datetime.now(tz=timezone.utc)
            self.last_run_finished_at = finished
            self.last_run_status = result.status
            self.last_error = result.error_message

            if operation_id and result.status != "success":
                self.progress.fail(operation_id, result.error_message or result.status)

            self.metrics.mark_fetch_job(request.mode, result.status, perf_counter() - timer_start)
            self.metrics.rate_limiter_tokens.set(self.rate_limiter.get_stats().current_tokens)
            self.repository.record_fetch_run(
                mode=request.mode,
                request=asdict(request),
                started_at_utc=started,
                finished_at_utc=finished,
                result=result,
            )

        return result

    def _failure(self, status: str, exc: BaseException) -> FetchRunResult:
        details = describe_error(exc)
        return FetchRunResult(
            status=status,
            error_type=details.type.value,
            error_message=details.message,
        )

    async def run_once(self) -> FetchRunResult:
        """Sync the current month in the configured timezone for every district."""
        today = datetime.now(tz=ZoneInfo(self.settings.aladhan.timezone)).date()
        request = MultiMonthRequest(year=today.year, months=[today.month])
        return await self.run_job(request)

    async def _run_loop(self) -> None:
        await self.run_once()

        while not self._stop_event.is_set():
            sleep_seconds = max(self.settings.sync_interval_hours, 1) * 3600
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_seconds)
            except TimeoutError:
                pass

            if self._stop_event.is_set():
                break
            await self.run_once()
