"""
Centralized date/time utilities for the user's timezone
All date/time operations should use functions from this module
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional, Tuple
from tasksync.config.settings import settings

# Singleton timezone object
USER_TIMEZONE = timezone(timedelta(hours=settings.TIMEZONE_OFFSET_HOURS))


def get_current_datetime() -> datetime:
    """
    Get current datetime in the user's timezone
    
    Returns:
        Current timezone-aware datetime
    """
    return datetime.now(USER_TIMEZONE)


def ensure_aware(value: datetime) -> datetime:
    """Attach the user's timezone to naive datetimes"""
    if value.tzinfo is None:
        return value.replace(tzinfo=USER_TIMEZONE)
    return value


def to_local(value: datetime) -> datetime:
    """Convert a datetime to the user's timezone"""
    return ensure_aware(value).astimezone(USER_TIMEZONE)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a remote or user supplied timestamp
    
    Accepts datetimes, dates and ISO-8601 strings (including a trailing "Z").
    Anything unparseable is treated as unset.
    
    Args:
        value: Value to parse
        
    Returns:
        Timezone-aware datetime or None
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=USER_TIMEZONE)
    if not isinstance(value, str):
        return None
    
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(text))
    except ValueError:
        return None


def format_iso(value: datetime) -> str:
    """
    Format datetime for the Motion API (ISO-8601, UTC)
    
    Example: "2024-03-01T09:00:00.000Z"
    """
    utc_value = ensure_aware(value).astimezone(timezone.utc)
    return utc_value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc_value.microsecond // 1000:03d}Z"


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """
    Get start and end of a day in the user's timezone
    
    Returns:
        (start of day, start of next day)
    """
    start = datetime.combine(day, time.min, tzinfo=USER_TIMEZONE)
    return start, start + timedelta(days=1)


def start_of_today(now: Optional[datetime] = None) -> datetime:
    """Get local midnight for the given instant (default: now)"""
    current = to_local(now) if now else get_current_datetime()
    return day_bounds(current.date())[0]
