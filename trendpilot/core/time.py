"""trendpilot.core.time

The only date helper surface in the codebase.

Dates travel as ISO ``YYYY-MM-DD`` strings; lexicographic order is date order.
"""

from __future__ import annotations

from datetime import date, timedelta

# Nominal backtest durations in calendar days.
DURATION_DAYS: dict[str, int | None] = {
    "3M": 90,
    "6M": 180,
    "1Y": 365,
    "3Y": 1095,
    "5Y": 1825,
    "MAX": None,
}


def parse_date(value: str) -> date:
    """Parse an ISO ``YYYY-MM-DD`` string (a datetime suffix is ignored).

    Raises:
        ValueError: if parsing fails.
    """

    v = value.strip()
    if "T" in v:
        v = v.split("T", 1)[0]
    return date.fromisoformat(v)


def normalize_date(value: str | date) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return parse_date(value).isoformat()


def duration_start(anchor: str, duration: str) -> str | None:
    """Start date for a nominal duration ending at ``anchor``; ``None`` means the full history."""

    key = duration.strip().upper()
    if key not in DURATION_DAYS:
        raise ValueError(f"Unknown backtest duration: {duration}")
    days = DURATION_DAYS[key]
    if days is None:
        return None
    return (parse_date(anchor) - timedelta(days=days)).isoformat()


def week_start(d: date) -> date:
    """Monday of the ISO week containing ``d``."""

    return d - timedelta(days=d.isoweekday() - 1)


def month_ordinal(d: date) -> int:
    return d.year * 12 + (d.month - 1)
