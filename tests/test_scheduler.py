import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base, build_engine
from models import RecurringExpense, RecurringFrequency
from scheduler import SchedulerManager


def test_roll_forward_commits_through_its_own_session() -> None:
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, expire_on_commit=False)

    with factory() as session:
        charge = RecurringExpense(
            user_id="user-1",
            description="Hosting",
            amount=Decimal("12.00"),
            frequency=RecurringFrequency.biweekly,
            next_due_date=date(2025, 1, 1),
        )
        session.add(charge)
        session.commit()
        charge_id = charge.id

    manager = SchedulerManager(session_factory=factory)
    assert manager.roll_forward("test", today=date(2025, 1, 20)) == 1
    assert manager.roll_forward("test", today=date(2025, 1, 20)) == 0

    with factory() as session:
        assert session.get(RecurringExpense, charge_id).next_due_date == date(
            2025, 1, 29
        )


def test_roll_forward_failure_is_logged_not_raised(caplog) -> None:
    # No tables, so the query fails.
    factory = sessionmaker(bind=create_engine("sqlite:///:memory:"))
    manager = SchedulerManager(session_factory=factory)

    with caplog.at_level(logging.ERROR, logger="scheduler"):
        assert manager.roll_forward("test", today=date(2025, 1, 20)) == 0
    assert "roll_forward_failed: source=test" in caplog.text
    assert not manager.scheduler.running
