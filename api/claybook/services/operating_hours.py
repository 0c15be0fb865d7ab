"""Studio operating hours and slot time arithmetic.

Pure calculation module: no database, no async, no FastAPI dependencies.

Two conventions hold everywhere in the service:
  * dates are plain datetime.date values, parsed from and rendered as
    "YYYY-MM-DD" with no timezone conversion, so a slot never drifts a day;
  * day indexes run 0=Sunday .. 6=Saturday, the numbering the admin UI
    uses for weekly scheduling rules.
"""

import re
from datetime import date, time, timedelta

SUNDAY, MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY = range(7)
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

SLOT_STEP_MINUTES = 30

# day index -> (first start, last start). Monday the studio is closed.
OPENING_HOURS: dict[int, tuple[time, time]] = {
    SUNDAY: (time(10, 0), time(16, 0)),
    TUESDAY: (time(10, 0), time(19, 0)),
    WEDNESDAY: (time(10, 0), time(19, 0)),
    THURSDAY: (time(10, 0), time(19, 0)),
    FRIDAY: (time(10, 0), time(19, 0)),
    SATURDAY: (time(9, 0), time(18, 0)),
}

_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})(?::\d{2})?")


def day_index(day: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def parse_date(value: str | date) -> date:
    """Accept a date or a "YYYY-MM-DD" string (anything after a 'T' is ignored)."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).split("T")[0])


def normalize_time(value: str | time) -> str:
    """Canonicalise a time to zero-padded "HH:MM".

    "9:30" -> "09:30", "09:30:00" -> "09:30", time(9, 30) -> "09:30".
    """
    if isinstance(value, time):
        return value.strftime("%H:%M")
    match = _TIME_RE.fullmatch((value or "").strip())
    if not match:
        raise ValueError(f"Invalid time: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid time: {value!r}")
    return f"{hours:02d}:{minutes:02d}"


def time_to_minutes(value: str) -> int:
    hours, minutes = normalize_time(value).split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap on minutes-since-midnight."""
    return start_a < end_b and start_b < end_a


def business_hours_for_day(day: date) -> list[str]:
    """Every bookable start time for free-form experiences on this date."""
    hours = OPENING_HOURS.get(day_index(day))
    if hours is None:
        return []

    first, last = hours
    current = first.hour * 60 + first.minute
    end = last.hour * 60 + last.minute

    starts: list[str] = []
    while current <= end:
        starts.append(minutes_to_time(current))
        current += SLOT_STEP_MINUTES
    return starts


def date_range(start: date, days: int) -> list[date]:
    return [start + timedelta(days=i) for i in range(days)]
