"""In-process alarm engine, in the spirit of cron and at.

This module provides:
- Relative, calendar (cron-style) and fixed-date schedules
- Next-occurrence computation with the closest-of-day-of-month-or-week rule
- An asyncio scheduler with a single waiter task
- Inline or own-context listener dispatch
"""
# Core types
from .types import (
    # Errors
    SchedulerError,
    PastDeadline,
    MalformedFieldSpec,
    SchedulerStopped,
    # Calendar constants
    Weekday,
    Month,
    # Schedule types
    FieldSpec,
    coerce_field,
    RelativeSchedule,
    CalendarSchedule,
    AtSchedule,
    Schedule,
    # Result types
    AlarmSnapshot,
    SchedulerEvent,
    SchedulerStatus,
)

# Config
from .config import SchedulerConfig

# Schedule utilities
from .schedule import (
    TOLERANCE_MS,
    next_occurrence,
    offset_to_next,
    offset_to_next_or_equal,
    parse_cron_expression,
    fields_to_cron,
    schedule_to_human,
    now_ms,
)

# Models
from .models import AlarmRecord

# Service
from .service import AlarmScheduler
from .service.dispatcher import AlarmListener, Dispatcher
from .service.events import EventEmitter, EventTypes
from .service.store import EntryStore

__all__ = [
    # Errors
    "SchedulerError",
    "PastDeadline",
    "MalformedFieldSpec",
    "SchedulerStopped",
    # Core types
    "Weekday",
    "Month",
    "FieldSpec",
    "coerce_field",
    "RelativeSchedule",
    "CalendarSchedule",
    "AtSchedule",
    "Schedule",
    "AlarmSnapshot",
    "SchedulerEvent",
    "SchedulerStatus",
    # Config
    "SchedulerConfig",
    # Schedule utilities
    "TOLERANCE_MS",
    "next_occurrence",
    "offset_to_next",
    "offset_to_next_or_equal",
    "parse_cron_expression",
    "fields_to_cron",
    "schedule_to_human",
    "now_ms",
    # Models
    "AlarmRecord",
    # Service
    "AlarmScheduler",
    "AlarmListener",
    "Dispatcher",
    "EventEmitter",
    "EventTypes",
    "EntryStore",
]
