import logging
from datetime import date
from decimal import Decimal

import pytest

from analytics import ExpenseRecord
from forecasting import (
    AlertKind,
    AlertSeverity,
    BudgetRecord,
    Forecast,
    RecurringCharge,
    average_daily_spend,
    daily_totals,
    days_elapsed_in_month,
    days_remaining_in_month,
    generate_alerts,
    project_month_end,
    remaining_recurring,
    upcoming_recurring,
)


TODAY = date(2025, 1, 21)


def _forecast(**overrides) -> Forecast:
    values = dict(
        projected_total=Decimal("1000"),
        current_spent=Decimal("500"),
        days_remaining=10,
        days_elapsed=21,
        avg_daily_spend=Decimal("25"),
        recurring_remaining=Decimal("0"),
        upcoming_recurring=[],
    )
    values.update(overrides)
    return Forecast(**values)


def _budget(budget_id: int, category, amount="100", threshold="0.8", period="monthly"):
    return BudgetRecord(
        id=budget_id,
        category=category,
        amount=Decimal(amount) if amount is not None else None,
        period=period,
        alert_threshold=Decimal(threshold) if threshold is not None else None,
    )


def test_calendar_day_counts() -> None:
    assert days_remaining_in_month(TODAY) == 10
    assert days_elapsed_in_month(TODAY) == 21
    assert days_remaining_in_month(date(2024, 2, 29)) == 0
    assert days_elapsed_in_month(date(2024, 3, 1)) == 1


def test_projection_matches_worked_example() -> None:
    forecast = project_month_end(
        Decimal("1000"), Decimal("50"), Decimal("200"), TODAY
    )
    assert forecast.days_remaining == 10
    assert forecast.projected_total == Decimal("1700")


@pytest.mark.parametrize("field", ["current", "avg", "recurring"])
def test_projection_is_monotonic(field: str) -> None:
    base = {
        "current": Decimal("100"),
        "avg": Decimal("12.5"),
        "recurring": Decimal("30"),
    }
    before = project_month_end(base["current"], base["avg"], base["recurring"], TODAY)
    base[field] += Decimal("7.25")
    after = project_month_end(base["current"], base["avg"], base["recurring"], TODAY)
    assert after.projected_total >= before.projected_total


def test_projection_is_never_negative() -> None:
    forecast = project_month_end(Decimal("-500"), Decimal("0"), Decimal("0"), TODAY)
    assert forecast.projected_total == Decimal("0")


def test_average_daily_spend_prefers_history() -> None:
    history = daily_totals(
        [
            ExpenseRecord(Decimal("30"), date(2024, 12, 2)),
            ExpenseRecord(Decimal("10"), date(2024, 12, 2)),
            ExpenseRecord(Decimal("20"), date(2024, 12, 9)),
        ]
    )
    assert history == {
        date(2024, 12, 2): Decimal("40"),
        date(2024, 12, 9): Decimal("20"),
    }
    assert average_daily_spend(history, Decimal("999"), TODAY) == Decimal("30")


def test_average_daily_spend_falls_back_to_run_rate() -> None:
    assert average_daily_spend({}, Decimal("210"), TODAY) == Decimal("10")


def test_recurring_within_rest_of_month() -> None:
    charges = [
        RecurringCharge(1, Decimal("99"), "Insurance", "monthly", date(2025, 1, 31)),
        RecurringCharge(2, Decimal("15"), "Phone", "monthly", date(2025, 1, 21)),
        RecurringCharge(3, Decimal("40"), "Storage", "monthly", date(2025, 1, 20)),
        RecurringCharge(4, Decimal("500"), "Lease", "monthly", date(2025, 2, 1)),
    ]
    upcoming = upcoming_recurring(charges, TODAY)
    assert [c.id for c in upcoming] == [2, 1]
    assert remaining_recurring(charges, TODAY) == Decimal("114")


def test_budget_alert_severity_scales_with_usage() -> None:
    budgets = [
        _budget(1, "Fuel"),
        _budget(2, "Meals"),
        _budget(3, "Tools"),
        _budget(4, "Travel", period="yearly"),
    ]
    spent = {
        "Fuel": Decimal("120"),
        "Meals": Decimal("85"),
        "Tools": Decimal("70"),
        "Travel": Decimal("5000"),
    }
    alerts = generate_alerts(
        _forecast(projected_total=Decimal("10")), budgets, spent, Decimal("0"), TODAY
    )
    by_id = {a.id: a for a in alerts}

    assert by_id["budget_exceeded_1"].severity == AlertSeverity.critical
    assert by_id["budget_warning_2"].severity == AlertSeverity.warning
    assert "85% of your Meals budget" in by_id["budget_warning_2"].message
    # 70 over 21 days projects to ~103 by the 31st
    assert by_id["budget_projection_3"].kind == AlertKind.budget_projection
    assert not any("_4" in alert_id for alert_id in by_id)


def test_malformed_budget_is_skipped_without_aborting() -> None:
    budgets = [
        _budget(1, "Fuel", threshold=None),
        _budget(2, None),
        _budget(3, "Meals", amount=None),
        _budget(4, "Tools", threshold="1.5"),
        _budget(5, "Supplies"),
    ]
    spent = {name: Decimal("95") for name in ("Fuel", "Meals", "Tools", "Supplies")}
    alerts = generate_alerts(
        _forecast(projected_total=Decimal("10")), budgets, spent, Decimal("0"), TODAY
    )
    assert [a.id for a in alerts if a.kind == AlertKind.budget_warning] == [
        "budget_warning_5"
    ]


def test_trend_and_on_track_alerts() -> None:
    up = generate_alerts(
        _forecast(projected_total=Decimal("1200")), [], {}, Decimal("1000"), TODAY
    )
    assert [a.kind for a in up] == [AlertKind.spending_trend]

    flat = generate_alerts(
        _forecast(projected_total=Decimal("1050")), [], {}, Decimal("1000"), TODAY
    )
    assert flat == []

    down = generate_alerts(
        _forecast(projected_total=Decimal("800")), [], {}, Decimal("1000"), TODAY
    )
    assert [a.kind for a in down] == [AlertKind.on_track]
    assert "$200 less" in down[0].message


def test_tight_month_uses_monthly_budget_total() -> None:
    budgets = [_budget(1, "Fuel", amount="300"), _budget(2, "Meals", amount="200")]
    alerts = generate_alerts(
        _forecast(projected_total=Decimal("650")), budgets, {}, Decimal("0"), TODAY
    )
    tight = [a for a in alerts if a.kind == AlertKind.tight_month]
    assert len(tight) == 1
    assert tight[0].data["over"] == Decimal("150")


def test_upcoming_bill_and_spending_spike() -> None:
    bill = RecurringCharge(9, Decimal("45"), "Software", "monthly", date(2025, 1, 24))
    forecast = _forecast(
        projected_total=Decimal("10"),
        current_spent=Decimal("1050"),
        avg_daily_spend=Decimal("25"),
        upcoming_recurring=[bill],
    )
    alerts = generate_alerts(forecast, [], {}, Decimal("0"), TODAY)
    kinds = {a.kind: a for a in alerts}

    assert kinds[AlertKind.upcoming_bill].message == "Software ($45) is due in 3 days."
    # 1050 / 21 = 50 per day, double the historical 25
    assert kinds[AlertKind.spending_spike].message.startswith(
        "Your daily spending this month is 100% higher"
    )


def test_non_numeric_budget_amount_is_skipped(caplog) -> None:
    budgets = [
        BudgetRecord(1, "Fuel", Decimal("NaN"), "monthly", Decimal("0.8")),
        _budget(2, "Meals"),
        BudgetRecord(3, "Tools", Decimal("Infinity"), "monthly", Decimal("0.8")),
        BudgetRecord(4, "Travel", Decimal("100"), "monthly", Decimal("NaN")),
    ]
    spent = {"Fuel": Decimal("90"), "Meals": Decimal("90")}

    with caplog.at_level(logging.WARNING, logger="forecasting"):
        alerts = generate_alerts(
            _forecast(projected_total=Decimal("150")),
            budgets,
            spent,
            Decimal("0"),
            TODAY,
        )

    budget_alerts = [a.id for a in alerts if a.id.startswith("budget_")]
    assert budget_alerts == ["budget_warning_2"]
    # only the valid Meals budget counts toward the monthly total
    tight = [a for a in alerts if a.kind == AlertKind.tight_month]
    assert tight[0].data["budget"] == Decimal("100")
    assert "budget_alert_skipped: budget_id=1" in caplog.text
    assert "budget_alert_skipped: budget_id=4" in caplog.text
