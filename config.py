import os
from decimal import Decimal
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        trend_alert_threshold: Decimal,
        history_months: int,
        upcoming_recurring_limit: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.trend_alert_threshold = trend_alert_threshold
        self.history_months = history_months
        self.upcoming_recurring_limit = upcoming_recurring_limit
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("SPEND_INSIGHTS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("SPEND_INSIGHTS_DATABASE_URL")
    if not database_url:
        database_url = f"sqlite:///{_ensure_data_dir() / 'spend_insights.db'}"
    timezone = os.getenv("SPEND_INSIGHTS_TIMEZONE", "America/Chicago")
    trend_alert_threshold = Decimal(
        os.getenv("SPEND_INSIGHTS_TREND_ALERT_THRESHOLD", "0.10")
    )
    history_months = int(os.getenv("SPEND_INSIGHTS_HISTORY_MONTHS", "3"))
    upcoming_recurring_limit = int(
        os.getenv("SPEND_INSIGHTS_UPCOMING_RECURRING_LIMIT", "5")
    )
    log_level = os.getenv("SPEND_INSIGHTS_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        trend_alert_threshold=trend_alert_threshold,
        history_months=history_months,
        upcoming_recurring_limit=upcoming_recurring_limit,
        log_level=log_level,
    )
