import logging
from datetime import date
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import sessionmaker

from config import get_settings
from database import session_scope
from periods import local_today
from recurrence import RecurringRollForward


logger = logging.getLogger(__name__)

ROLL_FORWARD_JOB_ID = "recurring_roll_forward"


class SchedulerManager:
    """Keeps recurring charges' next due dates from falling behind today."""

    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        self.session_factory = session_factory
        self.scheduler = BackgroundScheduler(timezone=get_settings().timezone)

    def roll_forward(self, source: str = "manual", today: Optional[date] = None) -> int:
        today = today or local_today()
        try:
            with session_scope(self.session_factory) as session:
                count = RecurringRollForward(session).roll_forward_due(today)
        except Exception:
            logger.exception(f"roll_forward_failed: source={source} today={today}")
            return 0
        logger.info(f"roll_forward_done: source={source} today={today} rolled={count}")
        return count

    def start(self) -> None:
        self.roll_forward("startup")
        self.scheduler.add_job(
            self.roll_forward,
            CronTrigger(hour=0, minute=5),
            args=["daily"],
            id=ROLL_FORWARD_JOB_ID,
            replace_existing=True,
            misfire_grace_time=3600,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"scheduler_started: job={ROLL_FORWARD_JOB_ID} at=00:05")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")
