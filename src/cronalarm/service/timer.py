"""Waiter and fire loop for the scheduler.

One task sleeps until the earliest deadline, wakes early when the deadline
changes, and fires due alarms. On every wake it re-derives whether the
earliest alarm is due instead of trusting why it woke up.
"""
import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from ..schedule import TOLERANCE_MS
from ..types import AlarmSnapshot, SchedulerError
from .events import EventTypes, emit_alarm_event
from .state import SchedulerState

if TYPE_CHECKING:
    from .service import AlarmScheduler

logger = logger.bind(module="cronalarm.timer")


def retarget(state: SchedulerState, deadline_ms: int | None) -> None:
    """Point the waiter at a new deadline and wake it up.

    Must be called with ``state.lock`` held.
    """
    state.next_wake_at_ms = deadline_ms
    state.wake_event.set()
    if deadline_ms is None:
        logger.debug("No alarms queued, waiter idle")
    else:
        logger.debug(f"Waiter armed for {deadline_ms}")


async def timer_loop(service: "AlarmScheduler") -> None:
    """Main waiter loop.

    1. Fire if the target deadline is within the tolerance window
    2. Otherwise sleep until the deadline (or until signaled)
    3. Repeat until the scheduler stops
    """
    state = service.state
    logger.info("Waiter started")

    while state.running:
        try:
            deadline_ms = state.next_wake_at_ms

            if deadline_ms is not None and deadline_ms - service.clock() < TOLERANCE_MS:
                state.next_wake_at_ms = None
                await fire_due(service)
                continue

            state.wake_event.clear()
            if deadline_ms is None:
                timeout = None
            else:
                timeout = max(0, deadline_ms - service.clock()) / 1000.0

            try:
                await asyncio.wait_for(state.wake_event.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass

        except asyncio.CancelledError:
            logger.info("Waiter cancelled")
            break
        except Exception as e:
            logger.exception(f"Waiter loop error: {e}")
            await asyncio.sleep(1)  # Avoid tight loop on errors

    logger.info("Waiter stopped")


async def fire_due(service: "AlarmScheduler") -> list[AlarmSnapshot]:
    """Fire the earliest alarm, then every further alarm that is already due.

    The lock is held only to pop and to reinsert; listeners run without it
    so they may submit or remove alarms themselves.

    Returns:
        Snapshots of the fired alarms, in firing order
    """
    state = service.state
    store = service.store
    fired: list[AlarmSnapshot] = []

    while True:
        async with state.lock:
            record = store.pop_earliest()
            if record is None:
                state.next_wake_at_ms = None
                return fired
            state.firing = record
            state.firing_cancelled = False

        fired.append(record.snapshot())
        logger.debug(f"Firing {record.name}")
        await service.dispatcher.dispatch(record)

        async with state.lock:
            cancelled = state.firing_cancelled
            state.firing = None
            state.firing_cancelled = False

            if record.repeating and not cancelled and not state.stopped:
                try:
                    next_fire_ms = record.advance(service.clock())
                except SchedulerError as e:
                    logger.error(f"Cannot reschedule {record.name}: {e}")
                else:
                    store.insert(record)
                    emit_alarm_event(
                        service.events,
                        EventTypes.ALARM_RESCHEDULED,
                        record.name,
                        {"next_fire_at_ms": next_fire_ms},
                    )

            earliest_ms = store.next_fire_at_ms()
            if earliest_ms is None:
                state.next_wake_at_ms = None
                return fired
            if state.stopped:
                return fired
            if earliest_ms - service.clock() >= TOLERANCE_MS:
                retarget(state, earliest_ms)
                return fired

        logger.debug("Next alarm already due, firing without waiting")
