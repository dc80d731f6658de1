"""Operating-hour and weekday rules shared by everything that creates time-bound records."""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from bughouse.core import config

OPEN_TIME = time(10, 0)
CLOSE_TIME = time(18, 0)
WEEKDAY_NAMES = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')
WEEKDAY_FULL_NAMES = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
OPERATING_WEEKDAYS = WEEKDAY_NAMES[:5]


def is_operating_weekday(day: date) -> bool:
    return day.weekday() < 5


def is_within_hours(start: time, end: time) -> bool:
    return OPEN_TIME <= start < end <= CLOSE_TIME


def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


def normalize_weekday(value: str) -> str:
    """Map 'monday', 'MON' or 'Mon' to 'Mon'. Raises ValueError for anything else."""
    normalized = value.strip().title()
    for short_name, full_name in zip(WEEKDAY_NAMES, WEEKDAY_FULL_NAMES):
        if normalized in (short_name, full_name):
            return short_name
    raise ValueError(f'Unknown day of week: {value!r}')


def wall_clock_time(value: time) -> time:
    """Reject zone-marked times; every stored time is center-local wall clock."""
    if value.tzinfo is not None:
        raise ValueError('Times are center-local; send them without a timezone offset or "Z" suffix.')
    return value


def slice_interval(start: time, end: time, duration_minutes: int) -> list[tuple[time, time]]:
    """Cut [start, end) into back-to-back windows, dropping a short remainder."""
    if duration_minutes <= 0:
        raise ValueError('duration_minutes must be positive')

    windows: list[tuple[time, time]] = []
    current = datetime.combine(date.min, start)
    limit = datetime.combine(date.min, end)
    step = timedelta(minutes=duration_minutes)

    while current + step <= limit:
        windows.append((current.time(), (current + step).time()))
        current += step

    return windows


def intervals_overlap(first_start, first_end, second_start, second_end) -> bool:
    return first_start < second_end and second_start < first_end


def center_now() -> datetime:
    """Current wall-clock time at the center, without tzinfo, matching stored datetimes."""
    return datetime.now(ZoneInfo(config.CENTER_TIMEZONE)).replace(tzinfo=None)
