from __future__ import annotations

from ramadan_clock.core.serialization import entries_to_payload, fetch_summary
from tests.helpers import sample_entries


def test_entries_payload_shape() -> None:
    payload = entries_to_payload(sample_entries())

    assert payload[0] == {
        "date": "2026-03-01",
        "sehri": "04:58",
        "iftar": "18:10",
        "location": "Dhaka",
    }


def test_fetch_summary() -> None:
    summary = fetch_summary(sample_entries(), "dateRange")

    assert summary == {
        "totalDistricts": 2,
        "totalDays": 2,
        "totalEntries": 3,
        "fetchMode": "dateRange",
        "dateRange": {"start": "2026-03-01", "end": "2026-03-02"},
    }
    assert fetch_summary([], "hijriMonth")["dateRange"] is None
