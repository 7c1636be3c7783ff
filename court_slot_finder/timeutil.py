import logging
import math
from datetime import date, datetime, timedelta
from typing import List

logger = logging.getLogger(__name__)

SLOT_DURATION_MINUTES = 30
MINUTES_PER_DAY = 24 * 60


def parse_time(time_str: str) -> int:
    """Parses an HH:MM string into minutes since midnight.

    Raises:
        ValueError: if the string is not a valid 24-hour time.
    """
    parsed = datetime.strptime(time_str.strip(), "%H:%M")
    return parsed.hour * 60 + parsed.minute


def format_minutes(total_minutes: int) -> str:
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def normalize_time(time_str: str) -> str:
    """Zero-pads a time string, e.g. '9:00' -> '09:00'."""
    return format_minutes(parse_time(time_str))


def add_minutes(time_str: str, minutes: int) -> str | None:
    """Adds minutes to an HH:MM time. Returns None when the result is at or past midnight."""
    total = parse_time(time_str) + minutes
    if total >= MINUTES_PER_DAY or total < 0:
        return None
    return format_minutes(total)


def subtract_minutes(time_str: str, minutes: int) -> str | None:
    """Subtracts minutes from an HH:MM time. Returns None before the start of the day."""
    return add_minutes(time_str, -minutes)


def is_valid_time(time_str: str) -> bool:
    if not isinstance(time_str, str):
        return False
    try:
        parse_time(time_str)
    except ValueError:
        return False
    return True


def is_valid_date(date_str: str) -> bool:
    if not isinstance(date_str, str) or len(date_str) != 10:
        return False
    try:
        datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def day_of_week(date_str: str) -> int:
    """Returns the weekday of an ISO date, Monday is 0."""
    return datetime.strptime(date_str, "%Y-%m-%d").weekday()


def calculate_booking_date(days_ahead: int, today: date | None = None) -> str:
    """Returns the ISO date `days_ahead` days after today."""
    base = today or datetime.now().date()
    target = base + timedelta(days=days_ahead)
    logger.debug(f"Calculated booking date {target.isoformat()} ({days_ahead} days ahead of {base.isoformat()})")
    return target.isoformat()


def generate_time_slots(start_time: str, duration: int = 60, slot_size: int = SLOT_DURATION_MINUTES) -> List[str]:
    """Lists the slot start times covered by a booking.

    Example: generate_time_slots("14:00", 60) -> ["14:00", "14:30"]

    Raises:
        ValueError: for a malformed start time or a booking running past midnight.
    """
    start = parse_time(start_time)
    number_of_slots = math.ceil(duration / slot_size)
    slots = []
    for i in range(number_of_slots):
        slot_start = start + i * slot_size
        if slot_start >= MINUTES_PER_DAY:
            raise ValueError(f"Booking starting at {start_time} for {duration} minutes runs past midnight")
        slots.append(format_minutes(slot_start))
    return slots
