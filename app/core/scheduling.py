"""Calendar and clock helpers shared by the scheduling services.

Dates are calendar dates without timezone and times are ``HH:MM`` 24-hour
strings local to the doctor. Nothing here converts between timezones.
"""

import re
from datetime import date, datetime, time, timedelta

from app.core.exceptions import ValidationException

TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")

DAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)


def parse_time(value: str, field: str = "requested_time") -> time:
    """
    Parse an ``HH:MM`` string into a time of day.

    Raises:
        ValidationException: If the value is not two digits, a colon, two digits,
            or the digits are out of range
    """
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise ValidationException("Time must be in HH:MM format", fields=[field])

    hours, minutes = (int(part) for part in value.split(":"))
    if hours > 23 or minutes > 59:
        raise ValidationException("Time is out of range", fields=[field])

    return time(hour=hours, minute=minutes)


def format_time(value: time) -> str:
    """Render a time of day as ``HH:MM``."""
    return value.strftime("%H:%M")


def parse_date(value: date | str, field: str = "requested_date") -> date:
    """Accept a date or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationException("Date must be in YYYY-MM-DD format", fields=[field]) from e


def day_name(value: date) -> str:
    """English weekday name for a calendar date, e.g. ``Monday``."""
    return DAY_NAMES[value.weekday()]


def normalize_day_name(value: str) -> str:
    """Case-insensitive match of a weekday name."""
    candidate = (value or "").strip().capitalize()
    if candidate not in DAY_NAMES:
        raise ValidationException(
            f"Unknown day of week: {value!r}",
            fields=["day_of_week"],
        )
    return candidate


def on_date(day: date, clock: time) -> datetime:
    """Project a time of day onto a calendar date."""
    return datetime.combine(day, clock)


def minutes_apart(first: datetime, second: datetime) -> float:
    """Absolute distance between two instants in minutes."""
    return abs((first - second).total_seconds()) / 60


def day_bounds(day: date) -> tuple[date, date]:
    """Half-open range ``[day, day + 1)`` covering one calendar day."""
    return day, day + timedelta(days=1)
