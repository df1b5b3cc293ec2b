from datetime import date
from decimal import Decimal

from analytics import (
    CategorySpending,
    ExpenseRecord,
    aggregate_by_category,
    analyze_spending,
    calculate_variances,
    percent_change,
)


def _records() -> list[ExpenseRecord]:
    return [
        ExpenseRecord(Decimal("10.10"), date(2025, 1, 2), 1, "Fuel", "⛽"),
        ExpenseRecord(Decimal("20.20"), date(2025, 1, 3), 1, "Fuel", "⛽"),
        ExpenseRecord(Decimal("5.05"), date(2025, 1, 4), 2, "Meals", "🍔"),
        ExpenseRecord(Decimal("0.01"), date(2025, 1, 5)),
        ExpenseRecord(Decimal("3.30"), date(2025, 1, 6)),
    ]


def test_aggregate_totals_and_counts_are_exact() -> None:
    records = _records()
    spending = aggregate_by_category(records)

    assert sum(row.total for row in spending) == sum(r.amount for r in records)
    assert sum(row.count for row in spending) == len(records)

    by_id = {row.category_id: row for row in spending}
    assert by_id[1].total == Decimal("30.30")
    assert by_id[1].count == 2
    assert by_id[None].category_name == "Uncategorized"
    assert by_id[None].total == Decimal("3.31")


def test_aggregate_of_nothing_is_empty() -> None:
    assert aggregate_by_category([]) == []


def test_variances_include_one_sided_categories() -> None:
    current = [CategorySpending(1, "Fuel", "⛽", Decimal("150"), 3)]
    previous = [
        CategorySpending(1, "Fuel", "⛽", Decimal("100"), 2),
        CategorySpending(2, "Meals", "🍔", Decimal("40"), 4),
    ]
    by_id = {v.category_id: v for v in calculate_variances(current, previous)}

    assert by_id[1].delta == Decimal("50")
    assert by_id[1].delta_percent == Decimal("50")
    assert by_id[1].count_change == 1
    assert by_id[2].current_total == Decimal("0")
    assert by_id[2].delta == Decimal("-40")
    assert by_id[2].delta_percent == Decimal("-100")


def test_delta_percent_is_none_when_previous_is_zero() -> None:
    current = [CategorySpending(3, "Tools", "🔧", Decimal("75"), 1)]
    (variance,) = calculate_variances(current, [])
    assert variance.previous_total == 0
    assert variance.delta_percent is None
    assert percent_change(Decimal("0"), Decimal("0")) == Decimal("0")


def test_swapping_periods_negates_deltas() -> None:
    a = [
        CategorySpending(1, "Fuel", "⛽", Decimal("150"), 3),
        CategorySpending(2, "Meals", "🍔", Decimal("20"), 1),
        CategorySpending(None, "Uncategorized", "📦", Decimal("9.99"), 1),
    ]
    b = [
        CategorySpending(1, "Fuel", "⛽", Decimal("100"), 2),
        CategorySpending(4, "Travel", "✈️", Decimal("300"), 1),
        CategorySpending(None, "Uncategorized", "📦", Decimal("12.50"), 2),
    ]
    forward = {v.category_id: v for v in calculate_variances(a, b)}
    backward = {v.category_id: v for v in calculate_variances(b, a)}

    assert forward.keys() == backward.keys()
    for key, fwd in forward.items():
        back = backward[key]
        assert fwd.delta == -back.delta
        assert fwd.count_change == -back.count_change
        if fwd.delta_percent is not None and back.delta_percent is not None:
            assert (fwd.delta_percent > 0) == (back.delta_percent < 0)

    forward_total = analyze_spending(a, b).total_change
    assert forward_total == -analyze_spending(b, a).total_change


def test_analysis_classifies_and_summarizes() -> None:
    current = [
        CategorySpending(1, "Fuel", "⛽", Decimal("300"), 6),
        CategorySpending(3, "Tools", "🔧", Decimal("80"), 1),
    ]
    previous = [
        CategorySpending(1, "Fuel", "⛽", Decimal("100"), 2),
        CategorySpending(2, "Meals", "🍔", Decimal("50"), 5),
    ]
    analysis = analyze_spending(current, previous)

    assert analysis.current_total == Decimal("380")
    assert analysis.previous_total == Decimal("150")
    assert analysis.total_change == Decimal("230")
    assert [i.category_name for i in analysis.top_increases] == ["Fuel", "Tools"]
    assert analysis.top_increases[0].reason == "4 more transactions"
    assert analysis.top_increases[1].type == "new"
    assert analysis.top_increases[1].percent_change is None
    assert analysis.top_decreases[0].type == "gone"
    assert analysis.top_decreases[0].reason == "5 fewer transactions"
    assert analysis.summary.startswith("Your spending increased by $230 (153%)")
    assert "⛽ Fuel (+$200)" in analysis.summary


def test_analysis_with_empty_previous_period_has_no_percent() -> None:
    current = [CategorySpending(1, "Fuel", "⛽", Decimal("40"), 1)]
    analysis = analyze_spending(current, [])
    assert analysis.total_change_percent is None
    assert "%" not in analysis.summary.split(" because")[0]
