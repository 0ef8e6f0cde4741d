from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any

import httpx

from ramadan_clock.config import AladhanProfile
from ramadan_clock.core.models import PrayerTimeEntry
from ramadan_clock.core.time_format import (
    gregorian_to_iso,
    iso_to_gregorian,
    normalize_time,
)
from ramadan_clock.fetching.cache import ResultCache
from ramadan_clock.fetching.errors import AladhanApiError
from ramadan_clock.fetching.rate_limiter import TokenBucketRateLimiter
from ramadan_clock.fetching.retry import raise_for_retryable_status, retry_async
from ramadan_clock.observability.metrics import Metrics


def _check_envelope(payload: Any) -> Any:
    if not isinstance(payload, dict):
        raise AladhanApiError("Aladhan API error: response is not a JSON object")
    code = payload.get("code")
    status = payload.get("status")
    if code != 200 or status != "OK":
        raise AladhanApiError(f"Aladhan API error: {code} - {status}", status_code=code)
    return payload.get("data")


def extract_sehri_iftar(day: Any) -> tuple[str, str]:
    timings = day.get("timings") if isinstance(day, dict) else None
    if not isinstance(timings, dict):
        raise AladhanApiError("Aladhan API error: timings missing from response")

    fajr = timings.get("Fajr")
    maghrib = timings.get("Maghrib")
    if not isinstance(fajr, str) or not isinstance(maghrib, str):
        raise AladhanApiError("Aladhan API error: Fajr/Maghrib missing from timings")
    try:
        return normalize_time(fajr), normalize_time(maghrib)
    except ValueError as exc:
        raise AladhanApiError(f"Aladhan API error: {exc}") from exc


class AladhanClient:
    """Per-district client for the Aladhan timings and Hijri calendar endpoints."""

    def __init__(
        self,
        *,
        profile: AladhanProfile,
        rate_limiter: TokenBucketRateLimiter,
        cache: ResultCache,
        inter_request_delay: float = 0.0,
        metrics: Metrics | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.profile = profile
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.inter_request_delay = inter_request_delay
        self.metrics = metrics
        self._transport = transport
        self._logger = logging.getLogger("ramadan.aladhan")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.profile.base_url,
            timeout=httpx.Timeout(self.profile.timeout_seconds),
            transport=self._transport,
        )

    def _params(self, district: str) -> dict[str, Any]:
        return {
            "city": district,
            "country": self.profile.country,
            "method": self.profile.method,
            "school": self.profile.school,
            "timezonestring": self.profile.timezone,
        }

    def _mark(self, endpoint: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.mark_upstream_request(endpoint, outcome)

    async def _get_json(self, client: httpx.AsyncClient, endpoint: str, path: str, params: dict) -> Any:
        # every attempt, retries included, spends a token
        async def _attempt() -> Any:
            await self.rate_limiter.acquire_token()
            try:
                response = await client.get(path, params=params)
                raise_for_retryable_status(response)
                data = _check_envelope(response.json())
            except (httpx.HTTPError, AladhanApiError, ValueError):
                self._mark(endpoint, "error")
                raise
            self._mark(endpoint, "ok")
            return data

        try:
            return await retry_async(
                _attempt,
                retries=self.profile.max_retries,
                base_delay=self.profile.retry_base_delay,
                description=f"GET {path}",
            )
        except ValueError as exc:
            raise AladhanApiError(f"Aladhan API error: invalid JSON body ({exc})") from exc

    async def fetch_day(self, client: httpx.AsyncClient, district: str, iso_date: str) -> PrayerTimeEntry:
        data = await self._get_json(
            client,
            "timingsByCity",
            f"/timingsByCity/{iso_to_gregorian(iso_date)}",
            self._params(district),
        )
        sehri, iftar = extract_sehri_iftar(data)
        return PrayerTimeEntry(date=iso_date, sehri=sehri, iftar=iftar, location=district)

    async def fetch_district_by_dates(self, district: str, dates: list[str]) -> list[PrayerTimeEntry]:
        entries: list[PrayerTimeEntry] = []
        requested = 0

        async with self._client() as client:
            for iso_date in dates:
                cache_key = f"{district}-{iso_date}"
                cached = self.cache.get(cache_key)
                if cached is not None:
                    if self.metrics is not None:
                        self.metrics.mark_cache(hit=True)
                    entries.extend(cached)
                    continue
                if self.metrics is not None:
                    self.metrics.mark_cache(hit=False)

                if requested > 0 and self.inter_request_delay > 0:
                    await asyncio.sleep(self.inter_request_delay)
                requested += 1

                try:
                    entry = await self.fetch_day(client, district, iso_date)
                except (httpx.HTTPError, AladhanApiError) as exc:
                    self._logger.warning(
                        "Failed to fetch prayer times for %s on %s: %s", district, iso_date, exc
                    )
                    continue

                self.cache.set(cache_key, [entry])
                entries.append(entry)

        return entries

    async def fetch_district_hijri_month(
        self,
        district: str,
        hijri_year: int,
        hijri_month: int,
    ) -> list[PrayerTimeEntry]:
        cache_key = f"{district}-hijri-{hijri_year}-{hijri_month}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            if self.metrics is not None:
                self.metrics.mark_cache(hit=True)
            return cached
        if self.metrics is not None:
            self.metrics.mark_cache(hit=False)

        try:
            async with self._client() as client:
                data = await self._get_json(
                    client,
                    "hijriCalendarByCity",
                    f"/hijriCalendarByCity/{hijri_year}/{hijri_month}",
                    self._params(district),
                )
            if not isinstance(data, list):
                raise AladhanApiError("Aladhan API error: calendar data is not a list")

            month_entries: list[PrayerTimeEntry] = []
            for day in data:
                sehri, iftar = extract_sehri_iftar(day)
                try:
                    gregorian = day["date"]["gregorian"]["date"]
                except (KeyError, TypeError) as exc:
                    raise AladhanApiError("Aladhan API error: gregorian date missing") from exc
                month_entries.append(
                    PrayerTimeEntry(
                        date=gregorian_to_iso(gregorian),
                        sehri=sehri,
                        iftar=iftar,
                        location=district,
                    )
                )
        except (httpx.HTTPError, AladhanApiError) as exc:
            self._logger.warning(
                "Failed to fetch Hijri calendar for %s in %s-%s: %s",
                district,
                hijri_year,
                hijri_month,
                exc,
            )
            raise

        self.cache.set(cache_key, month_entries)
        return month_entries

    async def check_connectivity(self, district: str = "Dhaka") -> float:
        """Fetch today's timings once; returns latency in seconds."""
        loop = asyncio.get_running_loop()
        started = loop.time()
        async with self._client() as client:
            await self.fetch_day(client, district, date.today().isoformat())
        return loop.time() - started
