from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeFloat,
    PositiveFloat,
    PositiveInt,
    RootModel,
    field_validator,
)
from pydantic.alias_generators import to_camel

from ramadan_clock.config import RATE_LIMIT_PRESETS, RateLimitProfile, resolve_rate_limit
from ramadan_clock.core.constants import is_valid_district
from ramadan_clock.core.models import (
    DateRangeRequest,
    FetchRequest,
    HijriMonthRequest,
    MultiMonthRequest,
    PrayerTimeEntry,
)
from ramadan_clock.core.time_format import normalize_time


class CamelModel(BaseModel):
    """Request bodies use camelCase keys; unknown keys are rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class RateLimitOverrides(CamelModel):
    capacity: Optional[PositiveFloat] = None
    refill_rate: Optional[PositiveFloat] = None
    min_wait: Optional[NonNegativeFloat] = None
    batch_size: Optional[PositiveInt] = None
    inter_request_delay: Optional[NonNegativeFloat] = None
    inter_district_delay: Optional[NonNegativeFloat] = None
    max_concurrent_districts: Optional[PositiveInt] = None


class _FetchBody(CamelModel):
    districts: Optional[list[str]] = None
    rate_limit_preset: Optional[str] = None
    rate_limit_config: Optional[RateLimitOverrides] = None

    @field_validator("rate_limit_preset")
    @classmethod
    def _known_preset(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in RATE_LIMIT_PRESETS:
            raise ValueError(f"Unknown rate limit preset {value!r}; use one of {sorted(RATE_LIMIT_PRESETS)}")
        return value

    def rate_limit(self) -> RateLimitProfile | None:
        """Per-job profile, or None to use the configured one."""
        overrides = self.rate_limit_config.model_dump(exclude_none=True) if self.rate_limit_config else {}
        if self.rate_limit_preset is None and not overrides:
            return None
        return resolve_rate_limit(self.rate_limit_preset, overrides)

    def _districts(self) -> list[str] | None:
        # an empty list means "all districts", same as omitting the key
        return self.districts or None


class DateRangeBody(_FetchBody):
    mode: Literal["dateRange"]
    start_date: dt.date
    end_date: dt.date

    def to_request(self) -> FetchRequest:
        return DateRangeRequest(
            start_date=self.start_date.isoformat(),
            end_date=self.end_date.isoformat(),
            districts=self._districts(),
        )


class MultiMonthBody(_FetchBody):
    mode: Literal["multiMonth"]
    year: int
    months: list[int]

    def to_request(self) -> FetchRequest:
        return MultiMonthRequest(year=self.year, months=self.months, districts=self._districts())


class HijriMonthBody(_FetchBody):
    mode: Literal["hijriMonth"]
    hijri_month: int
    hijri_year: int

    def to_request(self) -> FetchRequest:
        return HijriMonthRequest(
            hijri_month=self.hijri_month,
            hijri_year=self.hijri_year,
            districts=self._districts(),
        )


class FetchRequestBody(RootModel):
    root: Annotated[
        Union[DateRangeBody, MultiMonthBody, HijriMonthBody],
        Field(discriminator="mode"),
    ]


class UploadRow(CamelModel):
    date: dt.date
    sehri: str
    iftar: str
    location: str

    @field_validator("sehri", "iftar")
    @classmethod
    def _normalized(cls, value: str) -> str:
        return normalize_time(value)

    @field_validator("location")
    @classmethod
    def _known_district(cls, value: str) -> str:
        if not is_valid_district(value):
            raise ValueError(f"Invalid district: {value}")
        return value

    def to_entry(self) -> PrayerTimeEntry:
        return PrayerTimeEntry(
            date=self.date.isoformat(),
            sehri=self.sehri,
            iftar=self.iftar,
            location=self.location,
        )


class UploadBody(CamelModel):
    file_name: str = "upload.json"
    entries: list[UploadRow] = Field(min_length=1)


class ScheduleEntryUpdate(CamelModel):
    sehri: Optional[str] = None
    iftar: Optional[str] = None

    @field_validator("sehri", "iftar")
    @classmethod
    def _normalized(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else normalize_time(value)


class RateLimitUpdate(CamelModel):
    capacity: Optional[PositiveFloat] = None
    refill_rate: Optional[PositiveFloat] = None
    min_wait: Optional[NonNegativeFloat] = None
