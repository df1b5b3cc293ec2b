from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


PERIODS = ("week", "month", "quarter", "year")


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError("Start date must be before end date")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def as_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


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


def month_bounds(day: date) -> DateRange:
    first = day.replace(day=1)
    last = first.replace(day=days_in_month(first.year, first.month))
    return DateRange(first, last)


def add_months(day: date, months: int) -> date:
    """Shift by whole months, snapping to the last day of shorter months."""
    total_months = day.month - 1 + months
    year = day.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(day.day, days_in_month(year, month)))


def current_period_range(period: str, today: Optional[date] = None) -> DateRange:
    today = today or local_today()
    if period == "week":
        start = today - timedelta(days=today.weekday())
        return DateRange(start, start + timedelta(days=6))
    if period == "month":
        return month_bounds(today)
    if period == "quarter":
        quarter_month = (today.month - 1) // 3 * 3 + 1
        start = date(today.year, quarter_month, 1)
        end = add_months(start, 3) - date.resolution
        return DateRange(start, end)
    if period == "year":
        return DateRange(date(today.year, 1, 1), date(today.year, 12, 31))
    raise ValueError(f"Unsupported period: {period}")


def previous_period_range(period: str, today: Optional[date] = None) -> DateRange:
    current = current_period_range(period, today)
    # The day before the current start always falls in the preceding unit.
    return current_period_range(period, current.start - date.resolution)
