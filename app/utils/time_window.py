"""Time window helpers for slot arithmetic.

A slot is a (date, time-of-day, duration) triple. Windows are half-open,
``[start, end)``, so an appointment ending at 11:00 does not overlap one
starting at 11:00.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from app.core.exceptions import InvalidInput


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    def overlaps(self, other: "TimeWindow") -> bool:
        return overlaps(self, other)

    def shifted(self, delta: timedelta) -> "TimeWindow":
        return TimeWindow(self.start + delta, self.end + delta)


def parse_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise InvalidInput(f"Invalid date: {value!r} (expected YYYY-MM-DD)")


def parse_time_slot(value: time | str) -> time:
    """Parse ``HH:MM``. A range such as ``"10:00 - 10:30"`` yields its start."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    text = str(value).strip()
    if "-" in text:
        text = text.split("-")[0].strip()
    try:
        hours, minutes = text.split(":")[:2]
        return time(int(hours), int(minutes))
    except (ValueError, TypeError):
        raise InvalidInput(f"Invalid time slot: {value!r} (expected HH:MM)")


def format_time_slot(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def to_interval(day: date | str, time_slot: time | str, duration_minutes: int) -> TimeWindow:
    """Convert a slot into a comparable window. Duration must be positive."""
    if not isinstance(duration_minutes, int) or isinstance(duration_minutes, bool) or duration_minutes <= 0:
        raise InvalidInput(f"Duration must be a positive number of minutes, got {duration_minutes!r}")
    start = datetime.combine(parse_date(day), parse_time_slot(time_slot))
    return TimeWindow(start, start + timedelta(minutes=duration_minutes))


def window_between(day: date | str, start_time: time | str, end_time: time | str) -> TimeWindow:
    """Window for a declared ``start_time``..``end_time`` interval on ``day``."""
    d = parse_date(day)
    start = datetime.combine(d, parse_time_slot(start_time))
    end = datetime.combine(d, parse_time_slot(end_time))
    if end <= start:
        raise InvalidInput(f"Interval end {end_time!r} is not after start {start_time!r}")
    return TimeWindow(start, end)


def overlaps(a: TimeWindow, b: TimeWindow) -> bool:
    return a.start < b.end and b.start < a.end


def start_instant(day: date | str, time_slot: time | str, tz: ZoneInfo) -> datetime:
    """Timezone-aware start of a slot, interpreting date/time in the business zone."""
    return datetime.combine(parse_date(day), parse_time_slot(time_slot), tzinfo=tz)


def safe_timezone(name: str | None, fallback: str = "UTC") -> ZoneInfo:
    try:
        return ZoneInfo(name or fallback)
    except Exception:
        return ZoneInfo(fallback)
