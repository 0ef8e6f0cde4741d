from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from ramadan_clock.config import RateLimitProfile
from ramadan_clock.core.constants import HIJRI_MONTH_APPROX_DAYS
from ramadan_clock.core.models import (
    DateRangeRequest,
    FetchProgress,
    FetchRequest,
    FetchRequestError,
    FetchStatus,
    HijriMonthRequest,
    MultiMonthRequest,
    PrayerTimeEntry,
    ProgressCallback,
)
from ramadan_clock.core.time_format import generate_date_range, generate_dates_for_months
from ramadan_clock.fetching.errors import AladhanApiError, FetchCancelledError, FetchJobError
from ramadan_clock.fetching.rate_limiter import TokenBucketRateLimiter
from ramadan_clock.providers.base import PrayerTimeProvider

DistrictFetch = Callable[[str], Awaitable[list[PrayerTimeEntry]]]


@dataclass(frozen=True)
class WorkPlan:
    districts: list[str]
    dates: list[str]
    total: int


def _batches(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class FetchOrchestrator:
    """Expands a fetch request into district x date work and drives it in waves.

    Districts are split into batches of ``max_concurrent_districts``. Batches
    run strictly one after another; the districts inside a batch run
    concurrently with staggered starts. Progress is reported after every
    batch through the optional callback.
    """

    def __init__(
        self,
        *,
        provider: PrayerTimeProvider,
        rate_limit: RateLimitProfile,
        rate_limiter: TokenBucketRateLimiter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.rate_limit = rate_limit
        self.rate_limiter = rate_limiter
        self._sleep = sleep
        self._logger = logging.getLogger("ramadan.fetch")
        self.last_failed_districts: list[str] = []

    @property
    def max_concurrent(self) -> int:
        return max(self.rate_limit.max_concurrent_districts, 1)

    def plan(self, request: FetchRequest) -> WorkPlan:
        districts = request.resolved_districts()
        if isinstance(request, DateRangeRequest):
            dates = generate_date_range(request.start_date, request.end_date)
            return WorkPlan(districts, dates, len(districts) * len(dates))
        if isinstance(request, MultiMonthRequest):
            dates = generate_dates_for_months(request.year, request.months)
            return WorkPlan(districts, dates, len(districts) * len(dates))
        if isinstance(request, HijriMonthRequest):
            return WorkPlan(districts, [], len(districts) * HIJRI_MONTH_APPROX_DAYS)
        raise FetchRequestError(f"Invalid mode: {getattr(request, 'mode', request)!r}")

    async def fetch(
        self,
        request: FetchRequest,
        on_progress: ProgressCallback | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[PrayerTimeEntry]:
        def _emit(current: int, total: int, district: str, status: FetchStatus) -> None:
            nonlocal last_district
            if district:
                last_district = district
            if on_progress is not None:
                on_progress(FetchProgress(current, total, district, status))

        self.last_failed_districts = []
        plan: WorkPlan | None = None
        last_district = ""
        # filled batch by batch so a failure can still report what was fetched
        entries: list[PrayerTimeEntry] = []
        try:
            plan = self.plan(request)
            self._logger.info(
                "Fetching prayer times mode=%s districts=%d days=%d max_concurrent=%d",
                request.mode,
                len(plan.districts),
                len(plan.dates),
                self.max_concurrent,
            )
            _emit(0, plan.total, "", FetchStatus.FETCHING)

            if isinstance(request, HijriMonthRequest):
                fetch_one = self._hijri_fetcher(request)
            else:
                fetch_one = self._dates_fetcher(plan.dates)

            await self._run_batches(
                plan,
                fetch_one,
                entries,
                _emit,
                cancel_event,
                isolate_failures=isinstance(request, HijriMonthRequest),
            )

            if self.last_failed_districts and len(self.last_failed_districts) == len(plan.districts):
                raise FetchJobError(
                    f"All {len(plan.districts)} districts failed for {request.mode} request"
                )
        except Exception:
            total = plan.total if plan is not None else 0
            _emit(len(entries), total, last_district, FetchStatus.FAILED)
            self._logger.exception("Prayer time fetch failed mode=%s", getattr(request, "mode", "?"))
            raise

        _emit(len(entries), plan.total, last_district, FetchStatus.COMPLETED)
        self._logger.info("Fetched %d prayer time entries", len(entries))
        return entries

    def _dates_fetcher(self, dates: list[str]) -> DistrictFetch:
        async def _fetch(district: str) -> list[PrayerTimeEntry]:
            return await self.provider.fetch_district_by_dates(district, dates)

        return _fetch

    def _hijri_fetcher(self, request: HijriMonthRequest) -> DistrictFetch:
        async def _fetch(district: str) -> list[PrayerTimeEntry]:
            return await self.provider.fetch_district_hijri_month(
                district, request.hijri_year, request.hijri_month
            )

        return _fetch

    async def _run_batches(
        self,
        plan: WorkPlan,
        fetch_one: DistrictFetch,
        entries: list[PrayerTimeEntry],
        emit: Callable[[int, int, str, FetchStatus], None],
        cancel_event: asyncio.Event | None,
        *,
        isolate_failures: bool,
    ) -> None:
        seen: set[tuple[str, str]] = set()
        delay = self.rate_limit.inter_district_delay

        for index, batch in enumerate(_batches(plan.districts, self.max_concurrent)):
            if cancel_event is not None and cancel_event.is_set():
                raise FetchCancelledError(f"Fetch cancelled after {index} batches")
            if index > 0 and delay > 0:
                await self._sleep(delay)

            # a failing district cancels its still-running siblings
            try:
                async with asyncio.TaskGroup() as group:
                    tasks = [
                        group.create_task(
                            self._run_district(district, position * delay, fetch_one, isolate_failures)
                        )
                        for position, district in enumerate(batch)
                    ]
            except ExceptionGroup as exc_group:
                raise exc_group.exceptions[0] from None

            for task in tasks:
                district_entries = task.result()
                for entry in district_entries:
                    key = (entry.date, entry.location)
                    if key in seen:
                        continue
                    seen.add(key)
                    entries.append(entry)

            emit(len(entries), plan.total, batch[-1], FetchStatus.FETCHING)

            if self.rate_limiter is not None and index % 2 == 0:
                self._logger.debug("Rate limiter stats batch=%d %s", index, self.rate_limiter.get_stats())

    async def _run_district(
        self,
        district: str,
        start_delay: float,
        fetch_one: DistrictFetch,
        isolate_failures: bool,
    ) -> list[PrayerTimeEntry]:
        if start_delay > 0:
            await self._sleep(start_delay)

        if not isolate_failures:
            return await fetch_one(district)

        try:
            return await fetch_one(district)
        except (httpx.HTTPError, AladhanApiError) as exc:
            self.last_failed_districts.append(district)
            self._logger.warning("District %s failed, continuing without it: %s", district, exc)
            return []
