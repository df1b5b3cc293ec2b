from datetime import date, timedelta

import pytest

from periods import (
    DateRange,
    add_months,
    current_period_range,
    month_bounds,
    previous_period_range,
)


def test_month_ranges_across_year_boundary() -> None:
    today = date(2025, 1, 15)
    assert current_period_range("month", today) == DateRange(
        date(2025, 1, 1), date(2025, 1, 31)
    )
    assert previous_period_range("month", today) == DateRange(
        date(2024, 12, 1), date(2024, 12, 31)
    )


def test_previous_month_uses_calendar_length_for_february() -> None:
    assert previous_period_range("month", date(2024, 3, 15)) == DateRange(
        date(2024, 2, 1), date(2024, 2, 29)
    )
    assert previous_period_range("month", date(2025, 3, 31)) == DateRange(
        date(2025, 2, 1), date(2025, 2, 28)
    )


def test_week_is_monday_aligned() -> None:
    # 2025-01-01 is a Wednesday
    today = date(2025, 1, 1)
    assert current_period_range("week", today) == DateRange(
        date(2024, 12, 30), date(2025, 1, 5)
    )
    assert previous_period_range("week", today) == DateRange(
        date(2024, 12, 23), date(2024, 12, 29)
    )


def test_quarter_and_year_ranges() -> None:
    today = date(2025, 2, 10)
    assert current_period_range("quarter", today) == DateRange(
        date(2025, 1, 1), date(2025, 3, 31)
    )
    assert previous_period_range("quarter", today) == DateRange(
        date(2024, 10, 1), date(2024, 12, 31)
    )
    assert current_period_range("year", today) == DateRange(
        date(2025, 1, 1), date(2025, 12, 31)
    )
    assert previous_period_range("year", today) == DateRange(
        date(2024, 1, 1), date(2024, 12, 31)
    )


@pytest.mark.parametrize("period", ["week", "month", "quarter", "year"])
def test_previous_period_ends_the_day_before_current_starts(period: str) -> None:
    day = date(2023, 11, 20)
    while day <= date(2025, 3, 10):
        current = current_period_range(period, day)
        previous = previous_period_range(period, day)
        assert previous.end + timedelta(days=1) == current.start
        assert current.contains(day)
        assert previous.start <= previous.end
        day += timedelta(days=9)


def test_unknown_period_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unsupported period"):
        current_period_range("fortnight", date(2025, 1, 1))


def test_date_range_rejects_inverted_bounds() -> None:
    with pytest.raises(ValueError):
        DateRange(date(2025, 2, 1), date(2025, 1, 1))


def test_month_helpers() -> None:
    assert month_bounds(date(2024, 2, 10)).days == 29
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 3, 15), -3) == date(2023, 12, 15)
