"""Clock-string helpers shared by the schedule engine.

Clock strings are ``HH:MM`` in 24-hour time with no timezone. They always
describe the device's local day, so arithmetic wraps at midnight.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Optional

MINUTES_IN_DAY = 1440

_CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_clock(value: str) -> int:
    """Return minutes since midnight for an ``HH:MM`` string."""
    match = _CLOCK_PATTERN.match((value or "").strip())
    if not match:
        raise ValueError(f"Invalid clock time {value!r}; expected HH:MM")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_clock(minutes: int) -> str:
    normalized = minutes % MINUTES_IN_DAY
    return f"{normalized // 60:02d}:{normalized % 60:02d}"


def add_minutes(value: str, minutes: int) -> str:
    return format_clock(parse_clock(value) + minutes)


def minutes_between(start: str, end: str) -> int:
    """Clock distance from ``start`` to ``end``; an earlier end crosses midnight."""
    start_minutes = parse_clock(start)
    end_minutes = parse_clock(end)
    if end_minutes < start_minutes:
        end_minutes += MINUTES_IN_DAY
    return end_minutes - start_minutes


def minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def compute_age_weeks(birth_date: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Whole weeks since ``birth_date`` (ISO date); None when unknown or in the future."""
    if not birth_date:
        return None
    try:
        birth = datetime.fromisoformat(birth_date).date()
    except ValueError:
        return None
    today = today or date.today()
    diff = (today - birth).days
    return diff // 7 if diff >= 0 else None
