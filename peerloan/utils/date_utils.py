"""Date manipulation utilities"""

from datetime import date, datetime, timezone
from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def add_months(from_date: date, months: int) -> date:
    """
    Add calendar months, clamping to the last day of the target month.

    Example:
        2024-01-31 + 1 month -> 2024-02-29
    """
    return from_date + relativedelta(months=months)
