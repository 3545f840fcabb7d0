# production_planner/utils/date_utils.py
from datetime import date, datetime, timedelta
from typing import Iterator, Optional, Union

WEEKDAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')

PAYDAY_START_DAY = 25
PAYDAY_END_DAY = 5

def convert_to_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Convert an ISO date string, date or datetime to a date.

    Args:
        value: Value to convert

    Returns:
        Date, or None when the value is missing or malformed
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    try:
        # Accept full timestamps, keep only the calendar day
        return date.fromisoformat(text[:10])
    except ValueError:
        return None

def weekday_index(day: date) -> int:
    """Weekday index with 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7

def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[weekday_index(day)]

def is_weekend(day: date) -> bool:
    return weekday_index(day) in (0, 6)

def is_friday(day: date) -> bool:
    return weekday_index(day) == 5

def is_payday_window(day: date) -> bool:
    """Whether the day falls between the 25th and the 5th of the next month."""
    return day.day >= PAYDAY_START_DAY or day.day <= PAYDAY_END_DAY

def trailing_dates(anchor: date, days: int) -> Iterator[date]:
    """Yield the `days` calendar dates strictly before the anchor, newest first."""
    for offset in range(1, days + 1):
        yield anchor - timedelta(days=offset)
