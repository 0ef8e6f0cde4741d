from __future__ import annotations

import pytest
from pydantic import ValidationError

from ramadan_clock.api.schemas import (
    FetchRequestBody,
    RateLimitUpdate,
    ScheduleEntryUpdate,
    UploadBody,
    UploadRow,
)
from ramadan_clock.config import DEFAULT_RATE_LIMIT_PROFILE, RATE_LIMIT_PRESETS
from ramadan_clock.core.models import (
    DateRangeRequest,
    FetchRequestError,
    HijriMonthRequest,
    MultiMonthRequest,
)


def _body(payload: dict):
    return FetchRequestBody.model_validate(payload).root


def test_date_range_body_maps_to_request() -> None:
    body = _body({"mode": "dateRange", "startDate": "2026-03-01", "endDate": "2026-03-05", "districts": ["Dhaka"]})

    request = body.to_request()
    assert isinstance(request, DateRangeRequest)
    assert request.start_date == "2026-03-01"
    assert request.resolved_districts() == ["Dhaka"]
    assert body.rate_limit() is None


def test_multi_month_body_coerces_numeric_strings() -> None:
    request = _body({"mode": "multiMonth", "year": "2026", "months": [3, "2", 3]}).to_request()

    assert isinstance(request, MultiMonthRequest)
    assert request.months == [3, 2]


def test_hijri_body_with_empty_districts_uses_all() -> None:
    request = _body({"mode": "hijriMonth", "hijriMonth": 9, "hijriYear": 1447, "districts": []}).to_request()

    assert isinstance(request, HijriMonthRequest)
    assert request.districts is None
    assert len(request.resolved_districts()) == 64


@pytest.mark.parametrize(
    "payload",
    [
        {"mode": "weekly"},
        {"startDate": "2026-03-01", "endDate": "2026-03-02"},
        {"mode": "dateRange", "startDate": "2026-03-01"},
        {"mode": "dateRange", "startDate": "03/01/2026", "endDate": "2026-03-05"},
        {"mode": "multiMonth", "year": "soon", "months": [3]},
        {"mode": "multiMonth", "year": 2026, "months": [3], "rateLimitPreset": "reckless"},
        {"mode": "multiMonth", "year": 2026, "months": [3], "rateLimitConfig": {"burst": 2}},
        {"mode": "multiMonth", "year": 2026, "months": [3], "colour": "green"},
    ],
)
def test_malformed_bodies_fail_validation(payload: dict) -> None:
    with pytest.raises(ValidationError):
        FetchRequestBody.model_validate(payload)


@pytest.mark.parametrize(
    "payload",
    [
        {"mode": "dateRange", "startDate": "2026-03-05", "endDate": "2026-03-01"},
        {"mode": "multiMonth", "year": 2026, "months": [13]},
        {"mode": "multiMonth", "year": 2026, "months": []},
        {"mode": "hijriMonth", "hijriMonth": 9, "hijriYear": 1399},
        {"mode": "dateRange", "startDate": "2026-03-01", "endDate": "2026-03-01", "districts": ["Atlantis"]},
    ],
)
def test_semantic_errors_surface_from_request_types(payload: dict) -> None:
    body = _body(payload)

    with pytest.raises(FetchRequestError):
        body.to_request()


def test_camel_case_overrides_apply_over_preset() -> None:
    body = _body(
        {
            "mode": "multiMonth",
            "year": 2026,
            "months": [3],
            "rateLimitPreset": "conservative",
            "rateLimitConfig": {
                "batchSize": 5,
                "interRequestDelay": 0.5,
                "interDistrictDelay": "1.5",
                "maxConcurrentDistricts": "2",
                "refillRate": 3,
            },
        }
    )

    profile = body.rate_limit()
    base = RATE_LIMIT_PRESETS["conservative"]
    assert profile.batch_size == 5
    assert profile.inter_request_delay == 0.5
    assert profile.inter_district_delay == 1.5
    assert profile.max_concurrent_districts == 2
    assert profile.refill_rate == 3
    assert profile.capacity == base.capacity
    assert profile.min_wait == base.min_wait


def test_overrides_without_preset_start_from_default_profile() -> None:
    profile = _body(
        {"mode": "multiMonth", "year": 2026, "months": [3], "rateLimitConfig": {"capacity": 7}}
    ).rate_limit()

    assert profile.capacity == 7
    assert profile.refill_rate == DEFAULT_RATE_LIMIT_PROFILE.refill_rate


@pytest.mark.parametrize(
    "overrides",
    [
        {"maxConcurrentDistricts": 0},
        {"batchSize": -3},
        {"capacity": 0},
        {"refillRate": -1},
        {"interRequestDelay": -0.1},
        {"maxConcurrentDistricts": "two"},
        {"minWait": "soon"},
    ],
)
def test_bad_override_values_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        FetchRequestBody.model_validate(
            {"mode": "multiMonth", "year": 2026, "months": [3], "rateLimitConfig": overrides}
        )


def test_upload_row_normalizes_times() -> None:
    row = UploadRow.model_validate({"date": "2026-03-01", "sehri": "4:58", "iftar": "18:10 (+06)", "location": "Dhaka"})

    entry = row.to_entry()
    assert entry.date == "2026-03-01"
    assert entry.sehri == "04:58"
    assert entry.iftar == "18:10"


@pytest.mark.parametrize(
    ("field", "value"),
    [("sehri", "noon"), ("iftar", "99:99"), ("location", "Atlantis"), ("date", "2026-02-30")],
)
def test_upload_row_rejects_bad_values(field: str, value: str) -> None:
    row = {"date": "2026-03-01", "sehri": "04:58", "iftar": "18:10", "location": "Dhaka", field: value}

    with pytest.raises(ValidationError):
        UploadRow.model_validate(row)


def test_upload_body_defaults_and_requires_entries() -> None:
    body = UploadBody.model_validate(
        {"entries": [{"date": "2026-03-01", "sehri": "04:58", "iftar": "18:10", "location": "Dhaka"}]}
    )

    assert body.file_name == "upload.json"
    with pytest.raises(ValidationError):
        UploadBody.model_validate({"fileName": "empty.json", "entries": []})


def test_schedule_entry_update() -> None:
    update = ScheduleEntryUpdate.model_validate({"sehri": "4:45"})

    assert update.model_dump(exclude_none=True) == {"sehri": "04:45"}
    with pytest.raises(ValidationError):
        ScheduleEntryUpdate.model_validate({"iftar": "late"})


def test_rate_limit_update() -> None:
    update = RateLimitUpdate.model_validate({"refillRate": 2, "minWait": 0})

    assert update.model_dump(exclude_none=True) == {"refill_rate": 2, "min_wait": 0}
    with pytest.raises(ValidationError):
        RateLimitUpdate.model_validate({"capacity": -4})
