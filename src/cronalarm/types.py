"""Core type definitions for the alarm engine.

This module defines:
- Field specs (wildcard or explicit ascending value lists)
- Schedule types (relative/calendar/at)
- Read-only alarm snapshots handed to listeners
- Event and status types
- Errors raised at the call site
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Iterable, Literal
from zoneinfo import ZoneInfo


# ============== Errors ==============

class SchedulerError(Exception):
    """Base class for alarm engine errors."""


class PastDeadline(SchedulerError):
    """The first occurrence is in the past or less than 1 second away."""

    def __init__(self, fire_at_ms: int | None = None, now_ms: int | None = None):
        self.fire_at_ms = fire_at_ms
        self.now_ms = now_ms
        if fire_at_ms is None or now_ms is None:
            message = "Alarm time is in the past or less than 1 second away"
        else:
            message = f"Alarm time {fire_at_ms} is only {fire_at_ms - now_ms}ms after {now_ms}"
        super().__init__(message)


class MalformedFieldSpec(SchedulerError, ValueError):
    """A field spec is empty, unsorted, duplicated, out of range or unsatisfiable."""


class SchedulerStopped(SchedulerError):
    """The scheduler was stopped and accepts no more alarms."""


# ============== Calendar Constants ==============

class Weekday(IntEnum):
    """Day of week, 1 = Sunday."""
    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 3
    WEDNESDAY = 4
    THURSDAY = 5
    FRIDAY = 6
    SATURDAY = 7


class Month(IntEnum):
    """Month of year, 0 = January."""
    JANUARY = 0
    FEBRUARY = 1
    MARCH = 2
    APRIL = 3
    MAY = 4
    JUNE = 5
    JULY = 6
    AUGUST = 7
    SEPTEMBER = 8
    OCTOBER = 9
    NOVEMBER = 10
    DECEMBER = 11


MINUTE_RANGE = (0, 59)
HOUR_RANGE = (0, 23)
DAY_OF_MONTH_RANGE = (1, 31)
MONTH_RANGE = (0, 11)
DAY_OF_WEEK_RANGE = (1, 7)

WILDCARD = "*"


# ============== Field Specs ==============

@dataclass(frozen=True)
class FieldSpec:
    """Allowed values of one calendar field.

    ``values`` is ``None`` for the wildcard, otherwise a non-empty,
    strictly ascending tuple.
    """
    values: tuple[int, ...] | None = None

    @classmethod
    def wildcard(cls) -> "FieldSpec":
        return cls(None)

    @classmethod
    def of(cls, values: Iterable[int], low: int, high: int) -> "FieldSpec":
        """Build an explicit spec, validating order and range."""
        items = tuple(values)
        if not items:
            raise MalformedFieldSpec("Field spec must not be empty")
        for value in items:
            if isinstance(value, str) or not isinstance(value, int):
                raise MalformedFieldSpec(f"Field value {value!r} is not an integer")
            if value == -1 and len(items) > 1:
                raise MalformedFieldSpec("Wildcard cannot be mixed with explicit values")
            if not low <= value <= high:
                raise MalformedFieldSpec(f"Field value {value} outside [{low}, {high}]")
        for previous, current in zip(items, items[1:]):
            if current <= previous:
                raise MalformedFieldSpec(
                    f"Field values must be ascending without duplicates: {list(items)}"
                )
        return cls(tuple(int(v) for v in items))

    @property
    def is_wildcard(self) -> bool:
        return self.values is None

    def contains(self, value: int) -> bool:
        if self.values is None:
            return True
        return value in self.values

    def first(self) -> int:
        if self.values is None:
            raise MalformedFieldSpec("Wildcard has no first value")
        return self.values[0]

    def last(self) -> int:
        if self.values is None:
            raise MalformedFieldSpec("Wildcard has no last value")
        return self.values[-1]

    def upto(self, high: int) -> tuple[int, ...]:
        """Explicit values not exceeding ``high``."""
        if self.values is None:
            raise MalformedFieldSpec("Wildcard has no explicit values")
        return tuple(v for v in self.values if v <= high)

    def __str__(self) -> str:
        if self.values is None:
            return WILDCARD
        return ",".join(str(v) for v in self.values)


def coerce_field(value: Any, low: int, high: int) -> FieldSpec:
    """Turn ``None``, ``"*"``, ``-1``, an int or an iterable into a FieldSpec."""
    if isinstance(value, FieldSpec):
        if value.values is not None:
            return FieldSpec.of(value.values, low, high)
        return value
    if value is None or value == WILDCARD or value == -1:
        return FieldSpec.wildcard()
    if isinstance(value, int):
        return FieldSpec.of((value,), low, high)
    if isinstance(value, str):
        raise MalformedFieldSpec(f"Unsupported field value {value!r}")
    items = tuple(value)
    if items == (-1,):
        return FieldSpec.wildcard()
    return FieldSpec.of(items, low, high)


# ============== Schedule Types ==============

@dataclass(frozen=True)
class RelativeSchedule:
    """Fires ``delay_minutes`` after submission, optionally repeating."""
    delay_minutes: int = 1
    repeating: bool = False
    kind: Literal["relative"] = "relative"


@dataclass(frozen=True)
class CalendarSchedule:
    """Cron-style schedule.

    Each field is a wildcard or an ascending list of allowed values:
    minute 0-59, hour 0-23, day of month 1-31, month 0-11 (0 = January),
    day of week 1-7 (1 = Sunday). When both day of month and day of week
    are restricted the earlier match wins. A fixed ``year`` makes the
    schedule one-shot; without it the schedule repeats.
    """
    minutes: Any = None
    hours: Any = None
    days_of_month: Any = None
    months: Any = None
    days_of_week: Any = None
    year: int | None = None
    timezone: str | None = None
    kind: Literal["calendar"] = "calendar"

    def __post_init__(self) -> None:
        object.__setattr__(self, "minutes", coerce_field(self.minutes, *MINUTE_RANGE))
        object.__setattr__(self, "hours", coerce_field(self.hours, *HOUR_RANGE))
        object.__setattr__(
            self, "days_of_month", coerce_field(self.days_of_month, *DAY_OF_MONTH_RANGE)
        )
        object.__setattr__(self, "months", coerce_field(self.months, *MONTH_RANGE))
        object.__setattr__(
            self, "days_of_week", coerce_field(self.days_of_week, *DAY_OF_WEEK_RANGE)
        )
        if self.year == -1:
            object.__setattr__(self, "year", None)
        if self.year is not None and self.year < 1970:
            raise MalformedFieldSpec(f"Year {self.year} is not supported")

    @property
    def repeating(self) -> bool:
        return self.year is None

    @classmethod
    def at_time(
        cls,
        hour: int,
        minute: int = 0,
        days_of_week: Any = None,
        timezone: str | None = None,
    ) -> "CalendarSchedule":
        """Create a daily (or weekly) schedule at a specific time.

        Examples:
            CalendarSchedule.at_time(7, 30)  # every day at 7:30
            CalendarSchedule.at_time(9, 0, [Weekday.MONDAY, Weekday.FRIDAY])
        """
        return cls(
            minutes=minute,
            hours=hour,
            days_of_week=days_of_week,
            timezone=timezone,
        )

    @classmethod
    def from_cron(
        cls,
        expression: str,
        year: int | None = None,
        timezone: str | None = None,
    ) -> "CalendarSchedule":
        """Create a schedule from a five-field crontab expression."""
        from .schedule import parse_cron_expression

        fields = parse_cron_expression(expression)
        return cls(**fields, year=year, timezone=timezone)


@dataclass(frozen=True)
class AtSchedule:
    """One-time schedule at a specific timestamp."""
    at_ms: int = 0  # Unix timestamp in milliseconds
    kind: Literal["at"] = "at"

    @property
    def repeating(self) -> bool:
        return False

    @classmethod
    def from_datetime(cls, dt: datetime) -> "AtSchedule":
        return cls(at_ms=int(dt.timestamp() * 1000))


# Union type for all schedule types
Schedule = RelativeSchedule | CalendarSchedule | AtSchedule


# ============== Snapshots ==============

@dataclass(frozen=True)
class AlarmSnapshot:
    """Read-only view of an alarm, as passed to listeners."""
    name: str
    schedule: Schedule
    next_fire_at_ms: int
    last_update_ms: int
    repeating: bool
    fire_in_own_context: bool = False

    @property
    def next_fire_at(self) -> datetime:
        """Fire time in the schedule's timezone, naive local time without one."""
        timezone = getattr(self.schedule, "timezone", None)
        tz = ZoneInfo(timezone) if timezone else None
        return datetime.fromtimestamp(self.next_fire_at_ms / 1000, tz=tz)

    def to_dict(self) -> dict[str, Any]:
        from .schedule import schedule_to_human

        return {
            "name": self.name,
            "kind": self.schedule.kind,
            "schedule": schedule_to_human(self.schedule),
            "next_fire_at_ms": self.next_fire_at_ms,
            "last_update_ms": self.last_update_ms,
            "repeating": self.repeating,
            "fire_in_own_context": self.fire_in_own_context,
        }


# ============== Result Types ==============

@dataclass
class SchedulerEvent:
    """Event emitted by the scheduler."""
    type: str
    alarm_name: str
    timestamp_ms: int
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "alarm_name": self.alarm_name,
            "timestamp_ms": self.timestamp_ms,
            "payload": self.payload,
        }


@dataclass
class SchedulerStatus:
    """Status of the alarm scheduler."""
    running: bool
    stopped: bool
    alarms_total: int
    next_fire_at_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "stopped": self.stopped,
            "alarms_total": self.alarms_total,
            "next_fire_at_ms": self.next_fire_at_ms,
        }
