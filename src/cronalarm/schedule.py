"""Schedule calculation utilities.

Computes next fire times for relative, calendar and fixed-date schedules.

Calendar schedules are resolved as a cascade from the finest field to the
coarsest: the minute is forced forward to the next allowed value, the hour is
moved to the next allowed value at or after the (possibly carried-over) hour,
and finally day and month are resolved together. If next minute value is in
the following hour the hour is incremented, and so on up the chain. Whenever
a coarser field moves forward, the finer ones restart at their first allowed
value.
"""
import calendar
import time
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from .types import (
    AtSchedule,
    CalendarSchedule,
    DAY_OF_MONTH_RANGE,
    DAY_OF_WEEK_RANGE,
    FieldSpec,
    HOUR_RANGE,
    MalformedFieldSpec,
    MINUTE_RANGE,
    MONTH_RANGE,
    PastDeadline,
    RelativeSchedule,
    Schedule,
    Weekday,
    WILDCARD,
)

# Deadlines closer than this to "now" are treated as due.
TOLERANCE_MS = 1000

MINUTE_MS = 60_000

# Feb 29 on a given weekday can be 28 years away; anything beyond is unsatisfiable.
_MAX_SEARCH_YEARS = 30


def now_ms() -> int:
    """Get current timestamp in milliseconds."""
    return int(time.time() * 1000)


# ============== Offset Helpers ==============

def offset_to_next(current: int, low: int, high: int, allowed: FieldSpec) -> int:
    """Distance to the closest allowed value strictly greater than ``current``.

    A wildcard always yields 1. Past the last allowed value the offset wraps
    from ``high`` back to ``low`` and on to the first allowed value.
    """
    if allowed.is_wildcard:
        return 1

    if current >= allowed.last():
        return (high - current + 1) + (allowed.first() - low)

    for value in allowed.values:
        if current < value:
            return value - current
    return 0


def offset_to_next_or_equal(current: int, low: int, high: int, allowed: FieldSpec) -> int:
    """Distance to the closest allowed value at or after ``current``.

    Values above ``high`` are ignored (day 31 in a 30-day month). When none
    are left, the offset lands on ``low`` of the next cycle.
    """
    if allowed.contains(current):
        return 0

    safe_values = allowed.upto(high)
    if not safe_values:
        return high - current + 1

    if current > safe_values[-1]:
        return (high - current + 1) + (safe_values[0] - low)

    for value in safe_values:
        if current < value:
            return value - current
    return 0


def day_of_week(dt: datetime) -> int:
    """Day of week with 1 = Sunday ... 7 = Saturday."""
    return dt.isoweekday() % 7 + 1


def days_in_month(dt: datetime) -> int:
    return calendar.monthrange(dt.year, dt.month)[1]


def _add_months(dt: datetime, months: int) -> datetime:
    """Move ``months`` forward and land on the 1st of that month."""
    index = dt.year * 12 + (dt.month - 1) + months
    return dt.replace(year=index // 12, month=index % 12 + 1, day=1)


# ============== Day / Month Resolution ==============

def _check_horizon(alarm: datetime, start: datetime) -> None:
    if alarm.year - start.year > _MAX_SEARCH_YEARS:
        raise MalformedFieldSpec("No date matches the day and month restrictions")


def resolve_day_of_month(alarm: datetime, schedule: CalendarSchedule) -> datetime:
    """Advance day of month and month together until both are allowed.

    Days can't use simple offsets like the other fields, because the number
    of days varies per month (think of an alarm that fires on every 31st).
    """
    months = schedule.months
    days = schedule.days_of_month
    start = alarm
    low_month, high_month = MONTH_RANGE
    low_day = DAY_OF_MONTH_RANGE[0]

    while not months.contains(alarm.month - 1) or not days.contains(alarm.day):
        _check_horizon(alarm, start)

        # Invalid month: go to the 1st day of the next valid month
        if not months.contains(alarm.month - 1):
            offset = offset_to_next_or_equal(alarm.month - 1, low_month, high_month, months)
            alarm = _add_months(alarm, offset)

        if not days.contains(alarm.day):
            offset = offset_to_next_or_equal(alarm.day, low_day, days_in_month(alarm), days)
            alarm += timedelta(days=offset)

    return alarm


def resolve_day_of_week(alarm: datetime, schedule: CalendarSchedule) -> datetime:
    """Advance day of week and month together until both are allowed."""
    months = schedule.months
    weekdays = schedule.days_of_week
    start = alarm
    low_month, high_month = MONTH_RANGE
    low_dow, high_dow = DAY_OF_WEEK_RANGE

    while not months.contains(alarm.month - 1) or not weekdays.contains(day_of_week(alarm)):
        _check_horizon(alarm, start)

        if not months.contains(alarm.month - 1):
            offset = offset_to_next_or_equal(alarm.month - 1, low_month, high_month, months)
            alarm = _add_months(alarm, offset)

        current = day_of_week(alarm)
        if not weekdays.contains(current):
            offset = offset_to_next_or_equal(current, low_dow, high_dow, weekdays)
            alarm += timedelta(days=offset)

    return alarm


def _closest_day(alarm: datetime, schedule: CalendarSchedule) -> datetime:
    """Both day fields restricted: take whichever match comes sooner."""
    candidates = []
    for resolve in (resolve_day_of_month, resolve_day_of_week):
        try:
            candidates.append(resolve(alarm, schedule))
        except MalformedFieldSpec:
            continue
    if not candidates:
        raise MalformedFieldSpec("No date matches the day and month restrictions")
    return min(candidates)


# ============== Next Occurrence ==============

def _zone(name: str | None) -> ZoneInfo | None:
    return ZoneInfo(name) if name else None


def _to_wall_clock(instant_ms: int, tz: ZoneInfo | None) -> datetime:
    return datetime.fromtimestamp(instant_ms / 1000, tz=tz).replace(tzinfo=None)


def _from_wall_clock(dt: datetime, tz: ZoneInfo | None) -> int:
    if tz is not None:
        dt = dt.replace(tzinfo=tz)
    return int(dt.timestamp() * 1000)


def _first_allowed(spec: FieldSpec, low: int) -> int:
    return low if spec.is_wildcard else spec.first()


def _compute_calendar_next(schedule: CalendarSchedule, reference_ms: int) -> int:
    tz = _zone(schedule.timezone)

    if schedule.year is not None:
        year_start_ms = _from_wall_clock(datetime(schedule.year, 1, 1), tz)
        # The minute step below is strict, so start one minute early
        reference_ms = max(reference_ms, year_start_ms - MINUTE_MS)

    alarm = _to_wall_clock(reference_ms, tz).replace(second=0, microsecond=0)

    # force increment at least to the next minute
    offset = offset_to_next(alarm.minute, *MINUTE_RANGE, schedule.minutes)
    alarm += timedelta(minutes=offset)

    first_minute = _first_allowed(schedule.minutes, MINUTE_RANGE[0])
    first_hour = _first_allowed(schedule.hours, HOUR_RANGE[0])

    # hour, as updated by the minute shift
    offset = offset_to_next_or_equal(alarm.hour, *HOUR_RANGE, schedule.hours)
    if offset:
        alarm += timedelta(hours=offset)
        alarm = alarm.replace(minute=first_minute)

    dom_restricted = not schedule.days_of_month.is_wildcard
    dow_restricted = not schedule.days_of_week.is_wildcard
    day_before = alarm.date()

    if dom_restricted and dow_restricted:
        alarm = _closest_day(alarm, schedule)
    elif dow_restricted:
        alarm = resolve_day_of_week(alarm, schedule)
    elif dom_restricted:
        alarm = resolve_day_of_month(alarm, schedule)
    elif not schedule.months.contains(alarm.month - 1):
        # Only months restricted: still honored, the dates stay unrestricted
        alarm = resolve_day_of_month(alarm, schedule)

    if alarm.date() != day_before:
        alarm = alarm.replace(hour=first_hour, minute=first_minute)

    if schedule.year is not None and alarm.year != schedule.year:
        raise PastDeadline()

    result = _from_wall_clock(alarm, tz)
    if result <= reference_ms:
        # Wall clock went backwards (DST fold); search past the repeated hour
        return _compute_calendar_next(schedule, reference_ms + 60 * MINUTE_MS)
    return result


def next_occurrence(schedule: Schedule, reference_ms: int) -> int:
    """Compute the next fire time strictly after ``reference_ms``.

    Args:
        schedule: The schedule configuration
        reference_ms: Reference timestamp in ms

    Returns:
        Next fire timestamp in milliseconds

    Raises:
        PastDeadline: a fixed date or fixed year that has no occurrence left
        MalformedFieldSpec: day and month restrictions that never match
    """
    if isinstance(schedule, RelativeSchedule):
        if schedule.delay_minutes < 1:
            raise PastDeadline()
        return reference_ms + schedule.delay_minutes * MINUTE_MS
    elif isinstance(schedule, AtSchedule):
        if schedule.at_ms > reference_ms:
            return schedule.at_ms
        raise PastDeadline(schedule.at_ms, reference_ms)
    elif isinstance(schedule, CalendarSchedule):
        return _compute_calendar_next(schedule, reference_ms)
    raise TypeError(f"Unknown schedule type: {type(schedule).__name__}")


# ============== Cron Expressions ==============

def _cron_values(values: list, offset: int = 0) -> list[int] | None:
    if WILDCARD in values:
        return None
    return sorted({int(v) + offset for v in values})


def parse_cron_expression(expression: str) -> dict[str, list[int] | None]:
    """Parse a five-field crontab expression with croniter.

    Crontab months (1-12) and weekdays (0-7, 0 and 7 = Sunday) are
    converted to the 0-11 and 1-7 domains used by CalendarSchedule.

    Returns:
        Keyword arguments for CalendarSchedule
    """
    from croniter import croniter

    parts = expression.split()
    if len(parts) != 5:
        raise MalformedFieldSpec(f"Cron expression needs 5 fields: {expression!r}")

    try:
        result = croniter.expand(expression)
        expanded, nth_weekday = result[0], result[1]
    except ValueError as e:
        raise MalformedFieldSpec(f"Invalid cron expression {expression!r}: {e}") from e

    if nth_weekday:
        raise MalformedFieldSpec(f"Nth weekday syntax is not supported: {expression!r}")
    if any(isinstance(v, str) and v != WILDCARD for field_values in expanded for v in field_values):
        raise MalformedFieldSpec(f"Last-day syntax is not supported: {expression!r}")

    minutes, hours, days, months, weekdays = expanded[:5]

    days_of_week = None
    if WILDCARD not in weekdays:
        days_of_week = sorted({int(v) % 7 + 1 for v in weekdays})

    return {
        "minutes": _cron_values(minutes),
        "hours": _cron_values(hours),
        "days_of_month": _cron_values(days),
        "months": _cron_values(months, offset=-1),
        "days_of_week": days_of_week,
    }


def fields_to_cron(schedule: CalendarSchedule) -> str:
    """Render a calendar schedule as crontab text (months 1-12, Sunday = 0)."""
    def render(spec: FieldSpec, offset: int = 0) -> str:
        if spec.is_wildcard:
            return WILDCARD
        return ",".join(str(v + offset) for v in spec.values)

    return " ".join([
        render(schedule.minutes),
        render(schedule.hours),
        render(schedule.days_of_month),
        render(schedule.months, offset=1),
        render(schedule.days_of_week, offset=-1),
    ])


# ============== Human Readable ==============

def interval_to_human(delay_minutes: int) -> str:
    if delay_minutes % 1440 == 0:
        return f"{delay_minutes // 1440} day(s)"
    if delay_minutes % 60 == 0:
        return f"{delay_minutes // 60} hour(s)"
    return f"{delay_minutes} minute(s)"


def calendar_to_human(schedule: CalendarSchedule) -> str:
    minutes, hours = schedule.minutes, schedule.hours
    rest_open = (
        schedule.days_of_month.is_wildcard
        and schedule.months.is_wildcard
        and schedule.year is None
    )

    if rest_open and len(minutes.values or ()) == 1 and len(hours.values or ()) == 1:
        time_str = f"{hours.first()}:{minutes.first():02d}"
        if schedule.days_of_week.is_wildcard:
            return f"every day at {time_str}"
        names = ", ".join(Weekday(v).name.capitalize() for v in schedule.days_of_week.values)
        return f"every {names} at {time_str}"

    if rest_open and hours.is_wildcard and schedule.days_of_week.is_wildcard:
        if minutes.is_wildcard:
            return "every minute"
        if len(minutes.values) == 1:
            return f"every hour at minute {minutes.first()}"

    text = f"cron {fields_to_cron(schedule)}"
    if schedule.year is not None:
        text += f" in {schedule.year}"
    return text


def schedule_to_human(schedule: Schedule) -> str:
    """Convert schedule to human-readable description."""
    if isinstance(schedule, AtSchedule):
        dt = datetime.fromtimestamp(schedule.at_ms / 1000)
        return f"once at {dt.strftime('%Y-%m-%d %H:%M:%S')}"
    elif isinstance(schedule, RelativeSchedule):
        prefix = "every" if schedule.repeating else "once after"
        return f"{prefix} {interval_to_human(schedule.delay_minutes)}"
    elif isinstance(schedule, CalendarSchedule):
        return calendar_to_human(schedule)
    return "unknown schedule"
