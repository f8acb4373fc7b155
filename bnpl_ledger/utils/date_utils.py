"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Timezone-aware current time"""
    return datetime.now(timezone.utc)


def today() -> date:
    return utcnow().date()


def add_days(from_date: date, days: int) -> date:
    """Add calendar days to a date"""
    return from_date + timedelta(days=days)


def days_overdue(due_date: date | None, as_of: date) -> int:
    """Whole days past the due date, 0 when not yet due or undated"""
    if due_date is None:
        return 0
    return max(0, (as_of - due_date).days)
