from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterator, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from analytics import (
    UNCATEGORIZED_ICON,
    UNCATEGORIZED_NAME,
    ZERO,
    CategorySpending,
    ExpenseRecord,
    SpendingInsight,
    aggregate_by_category,
    analyze_spending,
)
from config import Settings, get_settings
from database import session_scope
from forecasting import (
    Alert,
    BudgetRecord,
    RecurringCharge,
    average_daily_spend,
    daily_totals,
    generate_alerts,
    project_month_end,
    remaining_recurring,
    upcoming_recurring,
)
from line_items import (
    LineItem,
    calculate_line_total,
    normalize_item_name,
    normalize_vendor,
    parse_unit,
    validate_line_items_total,
)
from merchant_rules import (
    MerchantRuleRecord,
    find_matching_rule,
    normalize_vendor_display_name,
)
from models import (
    Budget,
    Category,
    Expense,
    ItemPriceHistory,
    MerchantRule,
    ReceiptLineItem,
    RecurringExpense,
)
from periods import (
    PERIODS,
    DateRange,
    add_months,
    current_period_range,
    month_bounds,
    previous_period_range,
)
from price_tracking import (
    PriceEntry,
    calculate_price_trend,
    calculate_savings_opportunity,
    calculate_savings_summary,
    calculate_vendor_rankings,
    compare_vendors_for_item,
    detect_price_alerts,
    find_biggest_decreases,
    find_biggest_increases,
    find_frequent_items,
    group_by_item,
    vendors_with_history,
)
from schemas import LineItemsIn, MerchantRuleIn, MerchantRuleUpdate, PriceHistoryIn


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class ValidationError(ValueError):
    pass


class NotFoundError(ValueError):
    pass


class DuplicateRuleError(ValueError):
    pass


class UpstreamDataError(RuntimeError):
    pass


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise UpstreamDataError(f"Failed to {action}") from exc


def require_user(user_id: Optional[str]) -> str:
    if not user_id or not str(user_id).strip():
        raise ValidationError("User ID is required")
    return str(user_id).strip()


def money(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return float(Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def jsonable(value: object) -> object:
    if isinstance(value, Decimal):
        return money(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


def _to_decimal(value: object) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def expense_record(row: Expense) -> ExpenseRecord:
    category = row.category
    return ExpenseRecord(
        amount=_to_decimal(row.amount) or ZERO,
        date=row.date,
        category_id=row.category_id if category else None,
        category_name=(category.name if category else None) or UNCATEGORIZED_NAME,
        category_icon=(category.icon if category else None) or UNCATEGORIZED_ICON,
    )


def recurring_charge(row: RecurringExpense) -> RecurringCharge:
    return RecurringCharge(
        id=row.id,
        amount=_to_decimal(row.amount) or ZERO,
        description=row.description,
        frequency=row.frequency.value,
        next_due_date=row.next_due_date,
    )


def budget_record(row: Budget) -> BudgetRecord:
    return BudgetRecord(
        id=row.id,
        category=row.category,
        amount=_to_decimal(row.amount),
        period=row.period.value,
        alert_threshold=_to_decimal(row.alert_threshold),
    )


def _insight_dict(insight: SpendingInsight) -> dict[str, object]:
    return {
        "type": insight.type,
        "category_name": insight.category_name,
        "category_icon": insight.category_icon,
        "amount_change": money(insight.amount_change),
        "percent_change": money(insight.percent_change),
        "reason": insight.reason,
    }


def _alert_dict(alert: Alert) -> dict[str, object]:
    return {
        "id": alert.id,
        "type": alert.kind.value,
        "severity": alert.severity.value,
        "title": alert.title,
        "message": alert.message,
        "data": jsonable(alert.data),
    }


def _charge_dict(charge: RecurringCharge) -> dict[str, object]:
    return {
        "id": charge.id,
        "amount": money(charge.amount),
        "description": charge.description,
        "frequency": charge.frequency,
        "next_due_date": charge.next_due_date.isoformat(),
    }


class ExpenseService:
    def __init__(self, session: Session, user_id: Optional[str]) -> None:
        self.session = session
        self.user_id = require_user(user_id)

    def records_between(self, start: date, end: date) -> list[ExpenseRecord]:
        stmt = (
            select(Expense)
            .options(joinedload(Expense.category))
            .where(
                Expense.user_id == self.user_id,
                Expense.date.between(start, end),
            )
            .order_by(Expense.date.asc(), Expense.id.asc())
        )
        with store_errors("load expenses"):
            rows = self.session.scalars(stmt).all()
        return [expense_record(row) for row in rows]

    def spending_for(self, period: DateRange) -> list[CategorySpending]:
        return aggregate_by_category(self.records_between(period.start, period.end))


class SpendingChangeService:
    def __init__(self, session: Session, user_id: Optional[str]) -> None:
        self.expenses = ExpenseService(session, user_id)

    def spending_change(self, period: Optional[str], today: date) -> dict[str, object]:
        period = period or "month"
        if period not in PERIODS:
            raise ValidationError(f"Period must be one of: {', '.join(PERIODS)}")
        current_range = current_period_range(period, today)
        previous_range = previous_period_range(period, today)

        analysis = analyze_spending(
            self.expenses.spending_for(current_range),
            self.expenses.spending_for(previous_range),
        )
        return {
            "current_total": money(analysis.current_total),
            "previous_total": money(analysis.previous_total),
            "total_change": money(analysis.total_change),
            "total_change_percent": money(analysis.total_change_percent),
            "variances": [
                {
                    "category_id": v.category_id,
                    "category_name": v.category_name,
                    "category_icon": v.category_icon,
                    "current_total": money(v.current_total),
                    "previous_total": money(v.previous_total),
                    "delta": money(v.delta),
                    "delta_percent": money(v.delta_percent),
                    "count_change": v.count_change,
                }
                for v in analysis.variances
            ],
            "top_increases": [_insight_dict(i) for i in analysis.top_increases],
            "top_decreases": [_insight_dict(i) for i in analysis.top_decreases],
            "summary": analysis.summary,
            "period": period,
            "current_period": current_range.as_dict(),
            "previous_period": previous_range.as_dict(),
        }


class ForecastService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[str],
        settings: Optional[Settings] = None,
    ) -> None:
        self.session = session
        self.expenses = ExpenseService(session, user_id)
        self.user_id = self.expenses.user_id
        self.settings = settings or get_settings()

    def recurring_charges(self) -> list[RecurringCharge]:
        stmt = select(RecurringExpense).where(
            RecurringExpense.user_id == self.user_id,
            RecurringExpense.is_active.is_(True),
        )
        with store_errors("load recurring expenses"):
            rows = self.session.scalars(stmt).all()
        return [recurring_charge(row) for row in rows]

    def active_budgets(self) -> list[BudgetRecord]:
        stmt = (
            select(Budget)
            .where(Budget.user_id == self.user_id, Budget.is_active.is_(True))
            .order_by(Budget.id.asc())
        )
        with store_errors("load budgets"):
            rows = self.session.scalars(stmt).all()
        return [budget_record(row) for row in rows]

    def forecast(self, today: date) -> dict[str, object]:
        month = month_bounds(today)
        current = self.expenses.records_between(month.start, today)
        current_spent = sum((r.amount for r in current), ZERO)
        current_by_category: dict[str, Decimal] = {}
        for record in current:
            current_by_category[record.category_name] = (
                current_by_category.get(record.category_name, ZERO) + record.amount
            )

        history_start = add_months(month.start, -self.settings.history_months)
        last_month = month_bounds(month.start - timedelta(days=1))
        history = self.expenses.records_between(history_start, last_month.end)
        avg_daily = average_daily_spend(daily_totals(history), current_spent, today)

        previous_month_total = sum(
            (r.amount for r in history if last_month.contains(r.date)), ZERO
        )

        charges = self.recurring_charges()
        upcoming = upcoming_recurring(charges, today)
        recurring_left = remaining_recurring(charges, today)
        budgets = self.active_budgets()

        forecast = project_month_end(
            current_spent, avg_daily, recurring_left, today, upcoming
        )
        alerts = generate_alerts(
            forecast,
            budgets,
            current_by_category,
            previous_month_total,
            today,
            trend_threshold=self.settings.trend_alert_threshold,
        )

        limit = self.settings.upcoming_recurring_limit
        return {
            "forecast": {
                "projected_total": money(forecast.projected_total),
                "current_spent": money(forecast.current_spent),
                "days_remaining": forecast.days_remaining,
                "avg_daily_spend": money(forecast.avg_daily_spend),
                "recurring_remaining": money(forecast.recurring_remaining),
                "upcoming_recurring": [
                    _charge_dict(c) for c in forecast.upcoming_recurring[:limit]
                ],
            },
            "alerts": [_alert_dict(a) for a in alerts],
            "comparison": {
                "previous_month_total": money(previous_month_total),
                "projected_vs_previous": money(
                    forecast.projected_total - previous_month_total
                ),
            },
        }


def increment_match_count(factory: sessionmaker, rule_id: int) -> None:
    """Best-effort bump of a rule's hit counter, run after the response."""
    try:
        with session_scope(factory) as session:
            session.execute(
                update(MerchantRule)
                .where(MerchantRule.id == rule_id)
                .values(match_count=MerchantRule.match_count + 1)
            )
    except Exception:
        logger.exception(f"match_count_increment_failed: rule_id={rule_id}")


class MerchantRuleService:
    NULLABLE_FIELDS = ("category_id", "vendor_display_name")

    def __init__(self, session: Session, user_id: Optional[str]) -> None:
        self.session = session
        self.user_id = require_user(user_id)

    @staticmethod
    def to_record(rule: MerchantRule) -> MerchantRuleRecord:
        category = rule.category
        return MerchantRuleRecord(
            id=rule.id,
            merchant_pattern=rule.merchant_pattern,
            match_type=rule.match_type,
            priority=rule.priority or 0,
            match_count=rule.match_count or 0,
            category_id=rule.category_id,
            category_name=category.name if category else None,
            category_icon=category.icon if category else None,
            category_color=category.color if category else None,
            is_business=rule.is_business,
            vendor_display_name=rule.vendor_display_name,
        )

    @staticmethod
    def to_dict(rule: MerchantRule) -> dict[str, object]:
        category = rule.category
        return {
            "id": rule.id,
            "user_id": rule.user_id,
            "merchant_pattern": rule.merchant_pattern,
            "match_type": rule.match_type.value,
            "category_id": rule.category_id,
            "is_business": rule.is_business,
            "vendor_display_name": rule.vendor_display_name,
            "priority": rule.priority,
            "is_active": rule.is_active,
            "auto_created": rule.auto_created,
            "match_count": rule.match_count,
            "categories": (
                {
                    "id": category.id,
                    "name": category.name,
                    "icon": category.icon,
                    "color": category.color,
                }
                if category
                else None
            ),
        }

    def list_all(self) -> list[MerchantRule]:
        stmt = (
            select(MerchantRule)
            .options(joinedload(MerchantRule.category))
            .where(MerchantRule.user_id == self.user_id)
            .order_by(MerchantRule.priority.desc(), MerchantRule.id.desc())
        )
        with store_errors("load merchant rules"):
            return self.session.scalars(stmt).all()

    def active_rules(self) -> list[MerchantRuleRecord]:
        stmt = (
            select(MerchantRule)
            .options(joinedload(MerchantRule.category))
            .where(
                MerchantRule.user_id == self.user_id,
                MerchantRule.is_active.is_(True),
            )
            .order_by(
                MerchantRule.priority.desc(),
                MerchantRule.match_count.desc(),
                MerchantRule.id.asc(),
            )
        )
        with store_errors("load merchant rules"):
            rows = self.session.scalars(stmt).all()
        return [self.to_record(row) for row in rows]

    def get(self, rule_id: int) -> MerchantRule:
        with store_errors("load merchant rule"):
            rule = self.session.get(MerchantRule, rule_id)
        if not rule or rule.user_id != self.user_id:
            raise NotFoundError("Rule not found")
        return rule

    def pattern_exists(
        self, pattern: Optional[str], exclude_id: Optional[int] = None
    ) -> bool:
        if not pattern or not pattern.strip():
            raise ValidationError("User ID and pattern are required")
        stmt = (
            select(MerchantRule.id)
            .where(
                MerchantRule.user_id == self.user_id,
                func.lower(MerchantRule.merchant_pattern) == pattern.strip().lower(),
            )
            .limit(1)
        )
        if exclude_id is not None:
            stmt = stmt.where(MerchantRule.id != exclude_id)
        with store_errors("check merchant rule"):
            return self.session.execute(stmt).scalar_one_or_none() is not None

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        with store_errors("load category"):
            category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValidationError("Category not found")

    def create(self, data: MerchantRuleIn) -> MerchantRule:
        pattern = (data.merchant_pattern or "").strip()
        if not pattern:
            raise ValidationError("User ID and merchant pattern are required")
        self._check_category(data.category_id)
        if self.pattern_exists(pattern):
            raise DuplicateRuleError("A rule for this merchant pattern already exists")

        rule = MerchantRule(
            user_id=self.user_id,
            merchant_pattern=pattern,
            match_type=data.match_type,
            category_id=data.category_id,
            is_business=data.is_business,
            vendor_display_name=(
                data.vendor_display_name
                or normalize_vendor_display_name(pattern)
                or None
            ),
            priority=data.priority,
            auto_created=data.auto_created,
        )
        self.session.add(rule)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateRuleError(
                "A rule for this merchant pattern already exists"
            ) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise UpstreamDataError("Failed to create merchant rule") from exc
        self.session.refresh(rule)
        return rule

    def update(self, rule_id: int, data: MerchantRuleUpdate) -> MerchantRule:
        rule = self.get(rule_id)
        changes = {
            key: value
            for key, value in data.model_dump(
                exclude_unset=True, exclude={"user_id"}
            ).items()
            if value is not None or key in self.NULLABLE_FIELDS
        }
        if "merchant_pattern" in changes:
            changes["merchant_pattern"] = changes["merchant_pattern"].strip()
            if not changes["merchant_pattern"]:
                raise ValidationError("Merchant pattern cannot be blank")
            if self.pattern_exists(changes["merchant_pattern"], exclude_id=rule_id):
                raise DuplicateRuleError(
                    "A rule for this merchant pattern already exists"
                )
        if "category_id" in changes:
            self._check_category(changes["category_id"])
        for key, value in changes.items():
            setattr(rule, key, value)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateRuleError(
                "A rule for this merchant pattern already exists"
            ) from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise UpstreamDataError("Failed to update merchant rule") from exc
        self.session.refresh(rule)
        return rule

    def delete(self, rule_id: int) -> None:
        rule = self.get(rule_id)
        self.session.delete(rule)
        with store_errors("delete merchant rule"):
            self.session.commit()

    def match(
        self,
        vendor: Optional[str],
        rules: Optional[list[MerchantRuleRecord]] = None,
    ) -> Optional[MerchantRuleRecord]:
        if rules is None:
            rules = self.active_rules()
        return find_matching_rule(vendor, rules)


def price_entry(row: ItemPriceHistory) -> PriceEntry:
    return PriceEntry(
        id=row.id,
        item_name_normalized=row.item_name_normalized,
        vendor=row.vendor,
        vendor_normalized=row.vendor_normalized,
        unit_price=_to_decimal(row.unit_price) or ZERO,
        quantity=_to_decimal(row.quantity) or Decimal("1"),
        unit_of_measure=row.unit_of_measure,
        purchase_date=row.purchase_date,
    )


def entry_to_dict(entry: PriceEntry) -> dict[str, object]:
    return {
        "id": entry.id,
        "item_name_normalized": entry.item_name_normalized,
        "vendor": entry.vendor,
        "vendor_normalized": entry.vendor_normalized,
        "unit_price": money(entry.unit_price),
        "quantity": float(entry.quantity),
        "unit_of_measure": entry.unit_of_measure,
        "purchase_date": entry.purchase_date.isoformat(),
    }


class PriceHistoryService:
    MODES = ("history", "trends", "alerts", "vendor-comparison")

    def __init__(self, session: Session, user_id: Optional[str]) -> None:
        self.session = session
        self.user_id = require_user(user_id)

    def add(self, data: PriceHistoryIn) -> ItemPriceHistory:
        item_name = normalize_item_name(data.item_name)
        if not item_name or data.unit_price is None or data.purchase_date is None:
            raise ValidationError(
                "user_id, item_name, unit_price, and purchase_date are required"
            )
        vendor = (data.vendor or "").strip() or None
        entry = ItemPriceHistory(
            user_id=self.user_id,
            item_name_normalized=item_name,
            vendor=vendor,
            vendor_normalized=normalize_vendor(vendor) if vendor else None,
            unit_price=data.unit_price,
            quantity=data.quantity,
            unit_of_measure=parse_unit(data.unit_of_measure),
            purchase_date=data.purchase_date,
            expense_id=data.expense_id,
        )
        self.session.add(entry)
        with store_errors("add price history"):
            self.session.commit()
        self.session.refresh(entry)
        return entry

    def delete(self, entry_id: int) -> None:
        with store_errors("load price history"):
            entry = self.session.get(ItemPriceHistory, entry_id)
        if not entry or entry.user_id != self.user_id:
            raise NotFoundError("Price history entry not found")
        self.session.delete(entry)
        with store_errors("delete price history"):
            self.session.commit()

    def entries(
        self,
        *,
        item_name: Optional[str] = None,
        vendor: Optional[str] = None,
        since: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[PriceEntry]:
        stmt = (
            select(ItemPriceHistory)
            .where(ItemPriceHistory.user_id == self.user_id)
            .order_by(
                ItemPriceHistory.purchase_date.desc(), ItemPriceHistory.id.desc()
            )
        )
        if item_name and normalize_item_name(item_name):
            stmt = stmt.where(
                ItemPriceHistory.item_name_normalized.contains(
                    normalize_item_name(item_name)
                )
            )
        if vendor and normalize_vendor(vendor):
            stmt = stmt.where(
                ItemPriceHistory.vendor_normalized.contains(normalize_vendor(vendor))
            )
        if since:
            stmt = stmt.where(ItemPriceHistory.purchase_date >= since)
        if limit:
            stmt = stmt.limit(limit)
        with store_errors("load price history"):
            rows = self.session.scalars(stmt).all()
        return [price_entry(row) for row in rows]

    def report(
        self,
        mode: Optional[str],
        today: date,
        *,
        item_name: Optional[str] = None,
        vendor: Optional[str] = None,
        limit: int = 100,
    ) -> object:
        mode = mode or "history"
        if mode not in self.MODES:
            raise ValidationError(f"Mode must be one of: {', '.join(self.MODES)}")
        if mode == "vendor-comparison":
            return self.vendor_comparison(item_name=item_name)

        history = self.entries(item_name=item_name, vendor=vendor, limit=limit)

        if mode == "history":
            return [entry_to_dict(e) for e in history]

        if mode == "trends":
            trends = []
            for name, items in group_by_item(history).items():
                trend = calculate_price_trend(items, name, today)
                if trend:
                    trends.append(trend)
            return {
                "trends": jsonable([asdict(t) for t in trends]),
                "biggest_increases": jsonable(
                    [asdict(t) for t in find_biggest_increases(trends, "30d", 5)]
                ),
                "biggest_decreases": jsonable(
                    [asdict(t) for t in find_biggest_decreases(trends, "30d", 5)]
                ),
                "frequent_items": jsonable(
                    [asdict(t) for t in find_frequent_items(trends, 3, 10)]
                ),
            }

        recent = self.entries(since=today - timedelta(days=30))
        return jsonable([asdict(a) for a in detect_price_alerts(recent, history)])

    def vendor_comparison(self, *, item_name: Optional[str] = None) -> dict:
        """Items bought from two or more vendors, with savings and rankings."""
        comparisons = []
        opportunities = []
        for name, items in group_by_item(self.entries(item_name=item_name)).items():
            if len(vendors_with_history(items)) < 2:
                continue
            comparison = compare_vendors_for_item(items, name)
            if comparison:
                comparisons.append(comparison)
            opportunity = calculate_savings_opportunity(items, name)
            if opportunity:
                opportunities.append(opportunity)

        comparisons.sort(key=lambda c: c.price_spread_pct, reverse=True)
        summary = calculate_savings_summary(opportunities)
        summary["top_opportunities"] = [asdict(o) for o in summary["top_opportunities"]]
        return {
            "items": jsonable([asdict(c) for c in comparisons]),
            "savings_summary": jsonable(summary),
            "vendor_rankings": jsonable(
                [asdict(r) for r in calculate_vendor_rankings(comparisons)]
            ),
        }


def line_item_dict(row: ReceiptLineItem) -> dict[str, object]:
    return {
        "id": row.id,
        "expense_id": row.expense_id,
        "item_name": row.item_name,
        "item_name_normalized": row.item_name_normalized,
        "quantity": float(row.quantity),
        "unit_price": money(row.unit_price),
        "line_total": money(row.line_total),
        "unit_of_measure": row.unit_of_measure,
        "is_taxable": row.is_taxable,
        "sort_order": row.sort_order,
    }


class LineItemService:
    """Receipt line items attached to an expense.

    Saving replaces the expense's items. When a vendor and purchase date are
    known, each item is also recorded in the price history so later trend
    and vendor reports can see it.
    """

    def __init__(self, session: Session, user_id: Optional[str]) -> None:
        self.session = session
        self.user_id = require_user(user_id)

    def _expense(self, expense_id: int) -> Expense:
        with store_errors("load expense"):
            expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise NotFoundError("Expense not found")
        return expense

    def items(self, expense_id: Optional[int] = None) -> list[ReceiptLineItem]:
        stmt = select(ReceiptLineItem).where(ReceiptLineItem.user_id == self.user_id)
        if expense_id is not None:
            stmt = stmt.where(ReceiptLineItem.expense_id == expense_id)
        stmt = stmt.order_by(
            ReceiptLineItem.expense_id,
            ReceiptLineItem.sort_order,
            ReceiptLineItem.id,
        )
        with store_errors("load line items"):
            return list(self.session.scalars(stmt))

    def replace(
        self, data: LineItemsIn
    ) -> tuple[list[ReceiptLineItem], dict[str, object]]:
        if data.expense_id is None or data.line_items is None:
            raise ValidationError("expense_id, user_id, and line_items are required")
        expense = self._expense(data.expense_id)
        vendor = (data.vendor or expense.vendor or "").strip() or None
        purchase_date = data.purchase_date or expense.date

        rows = []
        for index, item in enumerate(data.line_items):
            name = item.item_name.strip()
            normalized = normalize_item_name(name)
            if not normalized:
                raise ValidationError(f"Line item {index + 1} has no item name")
            line_total = item.line_total
            if line_total is None:
                line_total = calculate_line_total(item.quantity, item.unit_price)
            rows.append(
                ReceiptLineItem(
                    user_id=self.user_id,
                    expense_id=expense.id,
                    item_name=name,
                    item_name_normalized=normalized,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=line_total,
                    unit_of_measure=parse_unit(item.unit_of_measure),
                    is_taxable=item.is_taxable,
                    sort_order=index,
                )
            )

        with store_errors("replace line items"):
            self.session.execute(
                delete(ReceiptLineItem).where(ReceiptLineItem.expense_id == expense.id)
            )
            self.session.execute(
                delete(ItemPriceHistory).where(
                    ItemPriceHistory.expense_id == expense.id
                )
            )
            self.session.add_all(rows)
            if vendor:
                self.session.add_all(
                    ItemPriceHistory(
                        user_id=self.user_id,
                        item_name_normalized=row.item_name_normalized,
                        vendor=vendor,
                        vendor_normalized=normalize_vendor(vendor),
                        unit_price=row.unit_price,
                        quantity=row.quantity,
                        unit_of_measure=row.unit_of_measure,
                        purchase_date=purchase_date,
                        expense_id=expense.id,
                    )
                    for row in rows
                )
            self.session.commit()
        logger.info(
            f"line_items_saved: expense_id={expense.id} count={len(rows)} "
            f"price_history={bool(vendor)}"
        )

        validation = validate_line_items_total(
            [
                LineItem(
                    item_name=row.item_name,
                    quantity=_to_decimal(row.quantity) or Decimal("1"),
                    unit_price=_to_decimal(row.unit_price) or ZERO,
                    line_total=_to_decimal(row.line_total) or ZERO,
                    unit_of_measure=row.unit_of_measure,
                )
                for row in rows
            ],
            _to_decimal(expense.amount) or ZERO,
        )
        return rows, validation
