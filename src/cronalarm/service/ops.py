"""Core operations for the scheduler service.

Every function here expects ``state.lock`` to be held by the caller, so the
store change and the waiter retarget happen as one step.
"""
from loguru import logger

from ..models import AlarmRecord
from ..types import SchedulerStatus
from .events import EventEmitter, EventTypes, emit_alarm_event
from .state import SchedulerState
from .store import EntryStore
from .timer import retarget

logger = logger.bind(module="cronalarm.ops")


def insert_alarm(
    store: EntryStore,
    state: SchedulerState,
    events: EventEmitter,
    record: AlarmRecord,
) -> bool:
    """Queue a new alarm.

    Args:
        store: Entry store
        state: Scheduler state
        events: Event emitter
        record: Record created by AlarmRecord.create

    Returns:
        True if the record became the earliest alarm
    """
    store.insert(record)
    is_earliest = store.peek_earliest() is record

    if is_earliest:
        logger.debug(f"{record.name} is the earliest alarm, updating the waiter")
        retarget(state, record.next_fire_at_ms)

    emit_alarm_event(
        events,
        EventTypes.ALARM_ADDED,
        record.name,
        {"next_fire_at_ms": record.next_fire_at_ms},
    )
    logger.info(f"Added {record}")
    return is_earliest


def remove_alarm(
    store: EntryStore,
    state: SchedulerState,
    events: EventEmitter,
    record: AlarmRecord,
) -> bool:
    """Remove a queued alarm.

    A record that is being dispatched right now is not in the store; removing
    it (typically from its own listener) keeps it from being requeued.

    Returns:
        True if the alarm was found
    """
    was_first = store.peek_earliest()
    found = store.remove(record)

    if not found and state.firing is not None and state.firing.same_alarm(record):
        state.firing_cancelled = True
        found = True

    # Recheck whenever the removed record equals the previous earliest
    if was_first is not None and record.same_alarm(was_first):
        retarget(state, store.next_fire_at_ms())

    if found:
        emit_alarm_event(events, EventTypes.ALARM_REMOVED, record.name)
        logger.info(f"Removed alarm {record.name}")

    return found


def remove_all_alarms(
    store: EntryStore,
    state: SchedulerState,
    events: EventEmitter,
) -> int:
    """Remove every queued alarm.

    Returns:
        Number of removed alarms
    """
    removed = store.remove_all()
    if state.firing is not None:
        state.firing_cancelled = True
    retarget(state, None)

    if removed:
        emit_alarm_event(events, EventTypes.ALARM_REMOVED, "", {"count": removed})
        logger.info(f"Removed {removed} alarms")

    return removed


def get_status(store: EntryStore, state: SchedulerState) -> SchedulerStatus:
    """Get scheduler status."""
    return SchedulerStatus(
        running=state.running,
        stopped=state.stopped,
        alarms_total=len(store),
        next_fire_at_ms=store.next_fire_at_ms(),
    )
