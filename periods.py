from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    return d.replace(day=days_in_month(d.year, d.month))


def add_months(d: date, count: int) -> date:
    """Shift by whole months, keeping the day where the target month allows it."""
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, min(d.day, days_in_month(year, month)))


def iter_months(start: date, end: date) -> Iterator[date]:
    current = month_start(start)
    last = month_start(end)
    while current <= last:
        yield current
        current = add_months(current, 1)


def week_start(d: date) -> date:
    # Weeks start on Sunday.
    return d - timedelta(days=(d.weekday() + 1) % 7)


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def iter_weeks(start: date, end: date) -> Iterator[date]:
    current = week_start(start)
    while current <= end:
        yield current
        current += timedelta(weeks=1)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if period == "all":
        return Period("all", date(1970, 1, 1), today)
    if period == "last_month":
        last_month_end = month_start(today) - date.resolution
        return Period("last_month", month_start(last_month_end), last_month_end)
    if period == "this_year":
        return Period("this_year", date(today.year, 1, 1), date(today.year, 12, 31))
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)

    return Period("this_month", month_start(today), month_end(today))
