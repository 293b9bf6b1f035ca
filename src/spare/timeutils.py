"""Date helpers shared by services (month arithmetic, naive UTC clock)."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so everything is stored naive."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def month_start(value: date) -> date:
    return value.replace(day=1)


def add_months(value: date, months: int) -> date:
    """Shift ``value`` by ``months`` clamping the day to the target month length."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_bounds(period: date) -> tuple[date, date]:
    """Return (first_day, last_day) of the month containing ``period``."""

    first = month_start(period)
    last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
    return first, last


def parse_period(raw: str | None, *, default: date | None = None) -> date:
    """Parse ``YYYY-MM`` or ``YYYY-MM-DD`` into the first day of that month."""

    if not raw:
        return month_start(default or date.today())
    text = raw.strip()
    try:
        if len(text) == 7:
            parsed = datetime.strptime(text, "%Y-%m").date()
        else:
            parsed = date.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"Invalid period: {raw}") from exc
    return month_start(parsed)


def parse_date(raw: str | None) -> date | None:
    if not raw:
        return None
    return date.fromisoformat(raw.strip()[:10])
