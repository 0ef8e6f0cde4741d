from __future__ import annotations

from typing import Protocol

from ramadan_clock.core.models import PrayerTimeEntry


class PrayerTimeProvider(Protocol):
    async def fetch_district_by_dates(self, district: str, dates: list[str]) -> list[PrayerTimeEntry]:
        """Fetch one entry per date; dates that fail are skipped, not raised."""

    async def fetch_district_hijri_month(
        self,
        district: str,
        hijri_year: int,
        hijri_month: int,
    ) -> list[PrayerTimeEntry]:
        """Fetch a whole Hijri month for a district; failures propagate."""
