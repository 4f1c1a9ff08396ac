"""Wall-clock helpers.

All persisted times are naive datetimes expressed in the tenant timezone, which
is how visits are planned and how field staff read them.
"""

from datetime import date, datetime, time, timedelta
from math import ceil
from typing import Union
from zoneinfo import ZoneInfo

from appointment_engine.config import settings

UNIT_MINUTES = 15


def tenant_tz() -> ZoneInfo:
    return ZoneInfo(settings.timezone)


def local_now() -> datetime:
    """Current tenant wall-clock time, without tzinfo."""
    return datetime.now(tenant_tz()).replace(tzinfo=None, microsecond=0)


def units_for(duration_minutes: int) -> int:
    """Billable 15-minute units needed for a duration."""
    if duration_minutes <= 0:
        return 0
    return ceil(duration_minutes / UNIT_MINUTES)


def parse_clock(value: Union[str, time]) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into a ``time``."""
    if isinstance(value, time):
        return value
    parts = value.strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid clock time: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    return time(hour, minute, second)


def at(day: date, clock: Union[str, time]) -> datetime:
    return datetime.combine(day, parse_clock(clock))


def minutes_of(clock: time) -> int:
    return clock.hour * 60 + clock.minute


def window(day: date, start: Union[str, time], duration_minutes: int) -> tuple[datetime, datetime]:
    """Half-open [start, end) interval for a visit."""
    begin = at(day, start)
    return begin, begin + timedelta(minutes=duration_minutes)


def month_start(day: date) -> date:
    return day.replace(day=1)


def format_clock(value: Union[datetime, time]) -> str:
    return value.strftime("%H:%M")


def to_local_naive(value: datetime) -> datetime:
    """Express an aware datetime in the tenant zone and drop tzinfo."""
    if value.tzinfo is None:
        return value
    return value.astimezone(tenant_tz()).replace(tzinfo=None)
