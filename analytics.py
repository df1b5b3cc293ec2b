from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence


UNCATEGORIZED_NAME = "Uncategorized"
UNCATEGORIZED_ICON = "📦"
ZERO = Decimal("0")


@dataclass(frozen=True)
class ExpenseRecord:
    amount: Decimal
    date: date
    category_id: Optional[int] = None
    category_name: str = UNCATEGORIZED_NAME
    category_icon: str = UNCATEGORIZED_ICON


@dataclass
class CategorySpending:
    category_id: Optional[int]
    category_name: str
    category_icon: str
    total: Decimal = ZERO
    count: int = 0


@dataclass(frozen=True)
class SpendingVariance:
    category_id: Optional[int]
    category_name: str
    category_icon: str
    current_total: Decimal
    previous_total: Decimal
    delta: Decimal
    delta_percent: Optional[Decimal]  # None when the previous total is zero
    count_change: int


@dataclass(frozen=True)
class SpendingInsight:
    type: str  # "increase" | "decrease" | "new" | "gone"
    category_name: str
    category_icon: str
    amount_change: Decimal
    percent_change: Optional[Decimal]
    reason: Optional[str] = None


@dataclass
class SpendingAnalysis:
    current_total: Decimal
    previous_total: Decimal
    total_change: Decimal
    total_change_percent: Optional[Decimal]
    variances: list[SpendingVariance] = field(default_factory=list)
    top_increases: list[SpendingInsight] = field(default_factory=list)
    top_decreases: list[SpendingInsight] = field(default_factory=list)
    summary: str = ""


def percent_change(current: Decimal, previous: Decimal) -> Optional[Decimal]:
    if previous == 0:
        return None if current != 0 else ZERO
    return (current - previous) / previous * 100


def aggregate_by_category(records: Iterable[ExpenseRecord]) -> list[CategorySpending]:
    grouped: dict[Optional[int], CategorySpending] = {}
    for record in records:
        bucket = grouped.get(record.category_id)
        if bucket is None:
            bucket = CategorySpending(
                category_id=record.category_id,
                category_name=record.category_name,
                category_icon=record.category_icon,
            )
            grouped[record.category_id] = bucket
        bucket.total += record.amount
        bucket.count += 1
    return list(grouped.values())


def total_spent(spending: Iterable[CategorySpending]) -> Decimal:
    return sum((row.total for row in spending), ZERO)


def calculate_variances(
    current: Sequence[CategorySpending], previous: Sequence[CategorySpending]
) -> list[SpendingVariance]:
    previous_by_id = {row.category_id: row for row in previous}
    variances: list[SpendingVariance] = []

    for row in current:
        prev = previous_by_id.pop(row.category_id, None)
        prev_total = prev.total if prev else ZERO
        prev_count = prev.count if prev else 0
        variances.append(
            SpendingVariance(
                category_id=row.category_id,
                category_name=row.category_name,
                category_icon=row.category_icon,
                current_total=row.total,
                previous_total=prev_total,
                delta=row.total - prev_total,
                delta_percent=percent_change(row.total, prev_total),
                count_change=row.count - prev_count,
            )
        )

    for prev in previous_by_id.values():
        variances.append(
            SpendingVariance(
                category_id=prev.category_id,
                category_name=prev.category_name,
                category_icon=prev.category_icon,
                current_total=ZERO,
                previous_total=prev.total,
                delta=-prev.total,
                delta_percent=percent_change(ZERO, prev.total),
                count_change=-prev.count,
            )
        )

    return variances


def generate_insight(variance: SpendingVariance) -> SpendingInsight:
    is_new = variance.previous_total == 0 and variance.current_total > 0
    is_gone = variance.current_total == 0 and variance.previous_total > 0
    is_increase = variance.delta > 0

    if is_new:
        kind = "new"
    elif is_gone:
        kind = "gone"
    elif is_increase:
        kind = "increase"
    else:
        kind = "decrease"

    reason: Optional[str] = None
    if variance.count_change > 2 and is_increase:
        reason = f"{variance.count_change} more transactions"
    elif variance.count_change < -2 and not is_increase:
        reason = f"{abs(variance.count_change)} fewer transactions"
    elif is_new:
        reason = "New spending category this period"
    elif is_gone:
        reason = "No spending in this category this period"

    return SpendingInsight(
        type=kind,
        category_name=variance.category_name,
        category_icon=variance.category_icon,
        amount_change=abs(variance.delta),
        percent_change=(
            abs(variance.delta_percent) if variance.delta_percent is not None else None
        ),
        reason=reason,
    )


def generate_summary(
    total_change: Decimal,
    total_change_percent: Optional[Decimal],
    top_increases: Sequence[SpendingInsight],
    top_decreases: Sequence[SpendingInsight],
) -> str:
    direction = "increased" if total_change >= 0 else "decreased"
    summary = f"Your spending {direction} by ${abs(total_change):.0f}"
    if total_change_percent is not None:
        summary += f" ({abs(total_change_percent):.0f}%)"
    summary += " compared to last period"

    if top_increases and total_change > 0:
        drivers = ", ".join(
            f"{i.category_icon} {i.category_name} (+${i.amount_change:.0f})"
            for i in top_increases[:3]
        )
        summary += f" because: {drivers}"
    elif top_decreases and total_change < 0:
        drivers = ", ".join(
            f"{d.category_icon} {d.category_name} (-${d.amount_change:.0f})"
            for d in top_decreases[:3]
        )
        summary += f" mainly from: {drivers}"
    return summary


def analyze_spending(
    current: Sequence[CategorySpending],
    previous: Sequence[CategorySpending],
    *,
    limit: int = 5,
) -> SpendingAnalysis:
    current_total = total_spent(current)
    previous_total = total_spent(previous)
    total_change = current_total - previous_total
    total_change_percent = percent_change(current_total, previous_total)

    variances = calculate_variances(current, previous)
    insights = [generate_insight(v) for v in variances]

    top_increases = sorted(
        (i for i in insights if i.type in ("increase", "new")),
        key=lambda i: i.amount_change,
        reverse=True,
    )[:limit]
    top_decreases = sorted(
        (i for i in insights if i.type in ("decrease", "gone") and i.amount_change),
        key=lambda i: i.amount_change,
        reverse=True,
    )[:limit]

    return SpendingAnalysis(
        current_total=current_total,
        previous_total=previous_total,
        total_change=total_change,
        total_change_percent=total_change_percent,
        variances=variances,
        top_increases=top_increases,
        top_decreases=top_decreases,
        summary=generate_summary(
            total_change, total_change_percent, top_increases, top_decreases
        ),
    )
