from __future__ import annotations

import calendar
import re
from datetime import date, timedelta

_MERIDIEM_RE = re.compile(r"\s*(AM|PM)\s*$", flags=re.IGNORECASE)
_SHORT_HOUR_RE = re.compile(r"^\d:\d{2}$")
_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def format_time_to_24_hour(raw: str) -> str:
    """Normalize an upstream timing such as ``"4:58 (+06)"`` to ``"04:58"``.

    AM/PM suffixes are dropped without shifting the hour; the upstream
    already reports 24-hour values and only decorates some of them.
    """
    value = _MERIDIEM_RE.sub("", raw.strip())
    if "(" in value:
        # "05:30 AM (+06)" keeps its suffix until the annotation is gone
        value = _MERIDIEM_RE.sub("", value[: value.index("(")])
    value = value.strip()

    if _SHORT_HOUR_RE.match(value):
        return f"0{value}"
    return value


def generate_date_range(start_date: str, end_date: str) -> list[str]:
    start = date.fromisoformat(start_date)
    end = date.fromisoformat(end_date)
    days = (end - start).days
    return [(start + timedelta(days=offset)).isoformat() for offset in range(days + 1)]


def generate_dates_for_months(year: int, months: list[int]) -> list[str]:
    dates: list[str] = []
    for month in months:
        _, days_in_month = calendar.monthrange(year, month)
        dates.extend(date(year, month, day).isoformat() for day in range(1, days_in_month + 1))
    return sorted(dates)


def gregorian_to_iso(value: str) -> str:
    """``DD-MM-YYYY`` -> ``YYYY-MM-DD``."""
    return "-".join(reversed(value.strip().split("-")))


def iso_to_gregorian(value: str) -> str:
    """``YYYY-MM-DD`` -> ``DD-MM-YYYY``, the form the upstream path expects."""
    return "-".join(reversed(value.strip().split("-")))


def is_valid_time(value: str) -> bool:
    return _HHMM_RE.match(value) is not None


def normalize_time(raw: str) -> str:
    """Like ``format_time_to_24_hour`` but rejects anything that is not 00:00-23:59."""
    value = format_time_to_24_hour(raw)
    if not is_valid_time(value):
        raise ValueError(f"Time must be in HH:mm format between 00:00 and 23:59, got {raw!r}")
    return value
