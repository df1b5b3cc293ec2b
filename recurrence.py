import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import RecurringExpense, RecurringFrequency
from periods import add_months, local_today


logger = logging.getLogger(__name__)

MONTH_STEPS = {
    RecurringFrequency.monthly: 1,
    RecurringFrequency.quarterly: 3,
    RecurringFrequency.annually: 12,
}
DAY_STEPS = {
    RecurringFrequency.weekly: 7,
    RecurringFrequency.biweekly: 14,
}


def nth_due_date(first_due: date, frequency: RecurringFrequency, n: int) -> date:
    if frequency in DAY_STEPS:
        return first_due + timedelta(days=DAY_STEPS[frequency] * n)
    # Offsets count from first_due so a 31st does not drift to the 28th.
    return add_months(first_due, MONTH_STEPS[frequency] * n)


def advance_due_date(
    first_due: date, frequency: RecurringFrequency, today: date
) -> date:
    if first_due >= today:
        return first_due
    max_iterations = 1000
    step = 1
    next_due = nth_due_date(first_due, frequency, step)
    while next_due < today and step < max_iterations:
        step += 1
        next_due = nth_due_date(first_due, frequency, step)
    if next_due < today:
        raise ValueError(
            f"Cannot roll {frequency.value} charge from {first_due} past {today}"
        )
    return next_due


class RecurringRollForward:
    def __init__(self, session: Session) -> None:
        self.session = session

    def roll_forward(self, expense: RecurringExpense, today: date) -> bool:
        next_due = advance_due_date(expense.next_due_date, expense.frequency, today)
        if next_due == expense.next_due_date:
            return False
        expense.next_due_date = next_due
        return True

    def roll_forward_due(self, today: Optional[date] = None) -> int:
        today = today or local_today()
        stmt = (
            select(RecurringExpense)
            .where(
                RecurringExpense.is_active.is_(True),
                RecurringExpense.next_due_date < today,
            )
            .order_by(RecurringExpense.next_due_date)
        )
        count = 0
        for expense in self.session.scalars(stmt).all():
            try:
                rolled = self.roll_forward(expense, today)
            except ValueError as exc:
                logger.warning(f"roll_forward_skipped: id={expense.id} reason={exc}")
                continue
            if rolled:
                count += 1
        self.session.flush()
        return count
