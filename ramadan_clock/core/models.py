from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Union

from ramadan_clock.core.constants import BANGLADESH_DISTRICTS, is_valid_district


class FetchRequestError(ValueError):
    pass


class FetchStatus(str, Enum):
    FETCHING = "fetching"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class PrayerTimeEntry:
    date: str
    sehri: str
    iftar: str
    location: str


@dataclass(frozen=True)
class FetchProgress:
    current: int
    total: int
    current_district: str
    status: FetchStatus

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.current / self.total * 100)


ProgressCallback = Callable[[FetchProgress], None]


def _parse_iso(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise FetchRequestError(f"Invalid {name} {value!r}. Use YYYY-MM-DD") from exc


def _check_districts(districts: list[str] | None) -> None:
    if districts is None:
        return
    if not districts:
        raise FetchRequestError("At least one district must be selected")
    invalid = [name for name in districts if not is_valid_district(name)]
    if invalid:
        raise FetchRequestError(f"Invalid districts: {', '.join(invalid)}")


@dataclass(frozen=True)
class DateRangeRequest:
    start_date: str
    end_date: str
    districts: list[str] | None = None
    mode: str = field(default="dateRange", init=False)

    def __post_init__(self) -> None:
        start = _parse_iso(self.start_date, "startDate")
        end = _parse_iso(self.end_date, "endDate")
        if start > end:
            raise FetchRequestError("startDate must be before or equal to endDate")
        _check_districts(self.districts)

    def resolved_districts(self) -> list[str]:
        return list(self.districts) if self.districts else list(BANGLADESH_DISTRICTS)


@dataclass(frozen=True)
class MultiMonthRequest:
    year: int
    months: list[int]
    districts: list[str] | None = None
    mode: str = field(default="multiMonth", init=False)

    def __post_init__(self) -> None:
        if not 1 <= self.year <= 9999:
            raise FetchRequestError(f"Invalid year: {self.year}")
        if not self.months:
            raise FetchRequestError("At least one month must be selected")
        invalid = [m for m in self.months if not 1 <= m <= 12]
        if invalid:
            raise FetchRequestError(f"Invalid months: {invalid}. Must be between 1 and 12")
        # dict.fromkeys keeps the first occurrence of each month
        object.__setattr__(self, "months", list(dict.fromkeys(self.months)))
        _check_districts(self.districts)

    def resolved_districts(self) -> list[str]:
        return list(self.districts) if self.districts else list(BANGLADESH_DISTRICTS)


@dataclass(frozen=True)
class HijriMonthRequest:
    hijri_month: int
    hijri_year: int
    districts: list[str] | None = None
    mode: str = field(default="hijriMonth", init=False)

    def __post_init__(self) -> None:
        if not 1 <= self.hijri_month <= 12:
            raise FetchRequestError("Invalid Hijri month. Must be between 1 and 12")
        if not 1400 <= self.hijri_year <= 1500:
            raise FetchRequestError("Invalid Hijri year. Must be between 1400 and 1500")
        _check_districts(self.districts)

    def resolved_districts(self) -> list[str]:
        return list(self.districts) if self.districts else list(BANGLADESH_DISTRICTS)


FetchRequest = Union[DateRangeRequest, MultiMonthRequest, HijriMonthRequest]
