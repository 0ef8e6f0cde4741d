from __future__ import annotations

from dataclasses import asdict

from ramadan_clock.core.models import PrayerTimeEntry


def entry_to_payload(entry: PrayerTimeEntry) -> dict:
    return asdict(entry)


def entries_to_payload(entries: list[PrayerTimeEntry]) -> list[dict]:
    return [entry_to_payload(entry) for entry in entries]


def fetch_summary(entries: list[PrayerTimeEntry], mode: str) -> dict:
    """Metadata block returned next to fetched entries."""
    districts = sorted({entry.location for entry in entries})
    dates = sorted({entry.date for entry in entries})
    return {
        "totalDistricts": len(districts),
        "totalDays": len(dates),
        "totalEntries": len(entries),
        "fetchMode": mode,
        "dateRange": {"start": dates[0], "end": dates[-1]} if dates else None,
    }
