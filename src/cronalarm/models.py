"""Data model for queued alarms.

An AlarmRecord combines an immutable schedule with the mutable scheduling
state (next fire time, last update time). Ordering and identity are kept
apart: ``sort_key`` orders the queue, ``same_alarm`` decides which entry a
removal refers to.
"""
from dataclasses import dataclass
from typing import Any

from .schedule import TOLERANCE_MS, next_occurrence, schedule_to_human
from .types import (
    AlarmSnapshot,
    AtSchedule,
    CalendarSchedule,
    PastDeadline,
    RelativeSchedule,
    Schedule,
)


def _schedule_identity(schedule: Schedule) -> tuple:
    if isinstance(schedule, CalendarSchedule):
        return (
            schedule.kind,
            schedule.minutes,
            schedule.hours,
            schedule.days_of_month,
            schedule.months,
            schedule.days_of_week,
        )
    elif isinstance(schedule, RelativeSchedule):
        return (schedule.kind, schedule.delay_minutes)
    elif isinstance(schedule, AtSchedule):
        return (schedule.kind, schedule.at_ms)
    return (type(schedule).__name__,)


@dataclass(eq=False)
class AlarmRecord:
    """A queued alarm.

    Build it with ``AlarmRecord.create`` so the first occurrence gets
    computed and checked.
    """
    name: str
    schedule: Schedule
    listener: Any
    fire_in_own_context: bool = False
    next_fire_at_ms: int = 0
    last_update_ms: int = 0

    __hash__ = None  # mutable, compared by value

    @classmethod
    def create(
        cls,
        name: str,
        schedule: Schedule,
        listener: Any,
        *,
        now_ms: int,
        fire_in_own_context: bool = False,
    ) -> "AlarmRecord":
        """Create a record with its first occurrence.

        Raises:
            PastDeadline: the first occurrence is 1 second away or less
        """
        fire_at_ms = next_occurrence(schedule, now_ms)
        if fire_at_ms - now_ms <= TOLERANCE_MS:
            raise PastDeadline(fire_at_ms, now_ms)

        return cls(
            name=name,
            schedule=schedule,
            listener=listener,
            fire_in_own_context=fire_in_own_context,
            next_fire_at_ms=fire_at_ms,
            last_update_ms=now_ms,
        )

    @property
    def repeating(self) -> bool:
        return self.schedule.repeating

    def sort_key(self) -> tuple[int, int]:
        """Queue order: fire time, then the least recently updated first."""
        return (self.next_fire_at_ms, self.last_update_ms)

    def same_alarm(self, other: object) -> bool:
        """Two alarms with the same schedule are told apart by name."""
        if not isinstance(other, AlarmRecord):
            return False
        return (
            self.name == other.name
            and self.next_fire_at_ms == other.next_fire_at_ms
            and self.repeating == other.repeating
            and _schedule_identity(self.schedule) == _schedule_identity(other.schedule)
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AlarmRecord):
            return NotImplemented
        return self.same_alarm(other)

    def advance(self, now_ms: int) -> int:
        """Move to the occurrence after the one just fired.

        The computation starts no earlier than the current fire time, so an
        alarm fired inside the tolerance window still moves forward.
        """
        reference_ms = max(now_ms, self.next_fire_at_ms)
        self.next_fire_at_ms = next_occurrence(self.schedule, reference_ms)
        self.last_update_ms = now_ms
        return self.next_fire_at_ms

    def snapshot(self) -> AlarmSnapshot:
        return AlarmSnapshot(
            name=self.name,
            schedule=self.schedule,
            next_fire_at_ms=self.next_fire_at_ms,
            last_update_ms=self.last_update_ms,
            repeating=self.repeating,
            fire_in_own_context=self.fire_in_own_context,
        )

    def describe(self) -> str:
        return f"Alarm ({self.name}) {schedule_to_human(self.schedule)}"

    def __str__(self) -> str:
        return f"{self.describe()} (next fire at {self.snapshot().next_fire_at:%Y-%m-%d %H:%M:%S})"
