import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

from analytics import ExpenseRecord, ZERO
from periods import month_bounds


logger = logging.getLogger(__name__)

BILL_LOOKAHEAD_DAYS = 7
SPIKE_MIN_DAYS = 7
SPIKE_FACTOR = Decimal("1.5")


class AlertKind(str, Enum):
    tight_month = "tight_month"
    on_track = "on_track"
    spending_trend = "spending_trend"
    budget_warning = "budget_warning"
    budget_exceeded = "budget_exceeded"
    budget_projection = "budget_projection"
    upcoming_bill = "upcoming_bill"
    spending_spike = "spending_spike"


class AlertSeverity(str, Enum):
    info = "info"
    success = "success"
    warning = "warning"
    critical = "critical"


@dataclass(frozen=True)
class RecurringCharge:
    id: int
    amount: Decimal
    description: str
    frequency: str
    next_due_date: date


@dataclass(frozen=True)
class BudgetRecord:
    id: int
    category: Optional[str]
    amount: Optional[Decimal]
    period: str
    alert_threshold: Optional[Decimal]


@dataclass
class Forecast:
    projected_total: Decimal
    current_spent: Decimal
    days_remaining: int
    days_elapsed: int
    avg_daily_spend: Decimal
    recurring_remaining: Decimal
    upcoming_recurring: list[RecurringCharge] = field(default_factory=list)


@dataclass(frozen=True)
class Alert:
    id: str
    kind: AlertKind
    severity: AlertSeverity
    title: str
    message: str
    data: dict[str, object] = field(default_factory=dict)


def days_remaining_in_month(today: date) -> int:
    return (month_bounds(today).end - today).days


def days_elapsed_in_month(today: date) -> int:
    return today.day


def daily_totals(records: Iterable[ExpenseRecord]) -> dict[date, Decimal]:
    totals: dict[date, Decimal] = {}
    for record in records:
        totals[record.date] = totals.get(record.date, ZERO) + record.amount
    return totals


def average_daily_spend(
    history: Mapping[date, Decimal], current_spent: Decimal, today: date
) -> Decimal:
    """Mean spend over days with activity, else this month's run rate."""
    if history:
        return sum(history.values(), ZERO) / len(history)
    return current_spent / max(days_elapsed_in_month(today), 1)


def upcoming_recurring(
    recurring: Iterable[RecurringCharge], today: date
) -> list[RecurringCharge]:
    month_end = month_bounds(today).end
    due = [r for r in recurring if today <= r.next_due_date <= month_end]
    return sorted(due, key=lambda r: r.next_due_date)


def remaining_recurring(recurring: Iterable[RecurringCharge], today: date) -> Decimal:
    return sum((r.amount for r in upcoming_recurring(recurring, today)), ZERO)


def project_month_end(
    current_spent: Decimal,
    avg_daily_spend: Decimal,
    recurring_remaining: Decimal,
    today: date,
    upcoming: Sequence[RecurringCharge] = (),
) -> Forecast:
    days_remaining = days_remaining_in_month(today)
    projected = current_spent + avg_daily_spend * days_remaining + recurring_remaining
    return Forecast(
        projected_total=max(projected, ZERO),
        current_spent=current_spent,
        days_remaining=days_remaining,
        days_elapsed=days_elapsed_in_month(today),
        avg_daily_spend=avg_daily_spend,
        recurring_remaining=recurring_remaining,
        upcoming_recurring=list(upcoming),
    )


@dataclass(frozen=True)
class CheckedBudget:
    id: int
    category: str
    amount: Decimal
    threshold: Decimal


def _checked_budget(budget: BudgetRecord) -> CheckedBudget:
    if not budget.category or not str(budget.category).strip():
        raise ValueError("budget has no category")
    if budget.amount is None:
        raise ValueError("budget has no amount")
    amount = Decimal(budget.amount)
    if not amount.is_finite() or amount <= 0:
        raise ValueError("budget amount must be positive")
    if budget.alert_threshold is None:
        raise ValueError("budget has no alert_threshold")
    threshold = Decimal(budget.alert_threshold)
    if not threshold.is_finite() or not 0 <= threshold <= 1:
        raise ValueError("alert_threshold must be within [0, 1]")
    return CheckedBudget(budget.id, budget.category, amount, threshold)


def valid_monthly_budgets(budgets: Iterable[BudgetRecord]) -> list[CheckedBudget]:
    checked: list[CheckedBudget] = []
    for budget in budgets:
        if budget.period != "monthly":
            continue
        try:
            checked.append(_checked_budget(budget))
        except (ValueError, TypeError, InvalidOperation) as exc:
            logger.warning(f"budget_alert_skipped: budget_id={budget.id} reason={exc}")
    return checked


def _budget_alert(
    budget: CheckedBudget,
    forecast: Forecast,
    current_by_category: Mapping[str, Decimal],
) -> Optional[Alert]:
    category, amount, threshold = budget.category, budget.amount, budget.threshold
    spent = current_by_category.get(category, ZERO)
    used = spent / amount

    if used >= 1:
        return Alert(
            id=f"budget_exceeded_{budget.id}",
            kind=AlertKind.budget_exceeded,
            severity=AlertSeverity.critical,
            title=f"{category} Budget Exceeded",
            message=(
                f"You've spent ${spent:.0f} of your ${amount:.0f} {category} "
                f"budget, ${spent - amount:.0f} over."
            ),
            data={
                "category": category,
                "spent": spent,
                "budget": amount,
                "over": spent - amount,
            },
        )
    if used >= threshold:
        return Alert(
            id=f"budget_warning_{budget.id}",
            kind=AlertKind.budget_warning,
            severity=AlertSeverity.warning,
            title=f"{category} Budget Alert",
            message=(
                f"You've spent {used * 100:.0f}% of your {category} budget "
                f"with {forecast.days_remaining} days left."
            ),
            data={
                "category": category,
                "spent": spent,
                "budget": amount,
                "remaining": amount - spent,
            },
        )

    days_elapsed = max(forecast.days_elapsed, 1)
    projected = spent / days_elapsed * (days_elapsed + forecast.days_remaining)
    if projected > amount:
        return Alert(
            id=f"budget_projection_{budget.id}",
            kind=AlertKind.budget_projection,
            severity=AlertSeverity.info,
            title=f"{category} Trending Over",
            message=(
                f"At this rate, you'll exceed your {category} budget "
                f"by ${projected - amount:.0f}."
            ),
            data={"category": category, "projected": projected, "budget": amount},
        )
    return None


def generate_alerts(
    forecast: Forecast,
    budgets: Sequence[BudgetRecord],
    current_by_category: Mapping[str, Decimal],
    previous_month_total: Decimal,
    today: date,
    *,
    trend_threshold: Decimal = Decimal("0.10"),
) -> list[Alert]:
    alerts: list[Alert] = []
    monthly = valid_monthly_budgets(budgets)
    total_monthly_budget = sum((b.amount for b in monthly), ZERO)

    if total_monthly_budget > 0 and forecast.projected_total > total_monthly_budget:
        over = forecast.projected_total - total_monthly_budget
        alerts.append(
            Alert(
                id="tight_month",
                kind=AlertKind.tight_month,
                severity=AlertSeverity.warning,
                title="Tight Month Ahead",
                message=(
                    f"If you keep spending like this, you'll be ${over:.0f} "
                    "over budget by month end."
                ),
                data={
                    "projected": forecast.projected_total,
                    "budget": total_monthly_budget,
                    "over": over,
                },
            )
        )

    if previous_month_total > 0:
        upper = previous_month_total * (1 + trend_threshold)
        lower = previous_month_total * (1 - trend_threshold)
        if forecast.projected_total > upper:
            increase = forecast.projected_total - previous_month_total
            alerts.append(
                Alert(
                    id="spending_trend",
                    kind=AlertKind.spending_trend,
                    severity=AlertSeverity.warning,
                    title="Spending Trending Up",
                    message=(
                        f"You're on pace to spend ${increase:.0f} more "
                        f"({increase / previous_month_total * 100:.0f}%) "
                        "than last month."
                    ),
                    data={
                        "projected": forecast.projected_total,
                        "previous_month": previous_month_total,
                        "increase": increase,
                    },
                )
            )
        elif forecast.projected_total < lower:
            savings = previous_month_total - forecast.projected_total
            alerts.append(
                Alert(
                    id="on_track",
                    kind=AlertKind.on_track,
                    severity=AlertSeverity.success,
                    title="Great Progress!",
                    message=(
                        f"You're on track to spend ${savings:.0f} less than last month."
                    ),
                    data={
                        "projected": forecast.projected_total,
                        "previous_month": previous_month_total,
                        "savings": savings,
                    },
                )
            )

    for budget in monthly:
        try:
            alert = _budget_alert(budget, forecast, current_by_category)
        except (ValueError, TypeError, InvalidOperation) as exc:
            logger.warning(f"budget_alert_skipped: budget_id={budget.id} reason={exc}")
            continue
        if alert:
            alerts.append(alert)

    if forecast.upcoming_recurring:
        next_bill = forecast.upcoming_recurring[0]
        days_until = (next_bill.next_due_date - today).days
        if days_until <= BILL_LOOKAHEAD_DAYS:
            plural = "" if days_until == 1 else "s"
            alerts.append(
                Alert(
                    id=f"upcoming_bill_{next_bill.id}",
                    kind=AlertKind.upcoming_bill,
                    severity=AlertSeverity.info,
                    title="Upcoming Bill",
                    message=(
                        f"{next_bill.description} (${next_bill.amount:.0f}) is due "
                        f"in {days_until} day{plural}."
                    ),
                    data={"recurring_id": next_bill.id, "days_until": days_until},
                )
            )

    if forecast.days_elapsed >= SPIKE_MIN_DAYS and forecast.avg_daily_spend > 0:
        current_avg = forecast.current_spent / forecast.days_elapsed
        if current_avg > forecast.avg_daily_spend * SPIKE_FACTOR:
            ratio = (current_avg / forecast.avg_daily_spend - 1) * 100
            alerts.append(
                Alert(
                    id="spending_spike",
                    kind=AlertKind.spending_spike,
                    severity=AlertSeverity.warning,
                    title="Spending Spike Detected",
                    message=(
                        f"Your daily spending this month is {ratio:.0f}% higher "
                        "than your average."
                    ),
                    data={
                        "current_avg": current_avg,
                        "historical_avg": forecast.avg_daily_spend,
                    },
                )
            )

    return alerts
