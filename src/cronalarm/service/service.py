"""Main AlarmScheduler class.

This is the entry point for all alarm operations:
- submit/remove/list alarms
- one waiter task that sleeps until the earliest alarm
- inline or own-context dispatch of listeners
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import itertools
from datetime import datetime
from typing import Any, Callable

from loguru import logger

from ..config import SchedulerConfig
from ..models import AlarmRecord
from ..schedule import now_ms
from ..types import (
    AlarmSnapshot,
    AtSchedule,
    CalendarSchedule,
    RelativeSchedule,
    Schedule,
    SchedulerEvent,
    SchedulerStatus,
    SchedulerStopped,
)
from .dispatcher import Dispatcher, resolve_handler
from .events import EventEmitter, EventTypes, emit_alarm_event
from .state import SchedulerState
from .store import EntryStore
from . import ops
from . import timer

logger = logger.bind(module="cronalarm.service")


class AlarmScheduler:
    """In-process alarm scheduler.

    Alarms are kept in an ordered store; a single waiter task sleeps until
    the earliest one is due and fires it. All operations must run on the
    event loop the scheduler was started on; other threads use the
    ``*_threadsafe`` helpers.

    Example:
        async with AlarmScheduler() as scheduler:
            await scheduler.add_cron("0 9 * * 1-5", send_report)
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        clock: Callable[[], int] | None = None,
    ):
        """Initialize the scheduler.

        Args:
            config: Scheduler settings
            clock: Returns the current time in epoch milliseconds
        """
        self.config = config or SchedulerConfig()
        self.clock = clock or now_ms
        self.store = EntryStore()
        self.events = EventEmitter(clock=self.clock)
        self.dispatcher = Dispatcher(self.events)
        self.state = SchedulerState()
        self._names = itertools.count()

    async def __aenter__(self) -> "AlarmScheduler":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self.state.running

    @property
    def is_stopped(self) -> bool:
        return self.state.stopped

    async def start(self) -> None:
        """Start the waiter task."""
        if self.state.stopped:
            raise SchedulerStopped("Scheduler was stopped and cannot be restarted")
        if self.state.running:
            logger.warning("Scheduler already running")
            return

        self.state.loop = asyncio.get_running_loop()
        self.state.running = True
        self.state.waiter_task = asyncio.create_task(
            timer.timer_loop(self), name=self.config.waiter_name
        )

        # Arm the waiter for alarms submitted before start
        async with self.state.lock:
            timer.retarget(self.state, self.store.next_fire_at_ms())

        emit_alarm_event(self.events, EventTypes.SCHEDULER_STARTED, "")
        logger.info("Alarm scheduler started")

    async def stop(self) -> None:
        """Stop the waiter and drop every queued alarm.

        Listeners that are already running are not interrupted.
        """
        if self.state.stopped:
            return

        self.state.stopped = True
        self.state.running = False
        self.state.wake_event.set()

        waiter_task = self.state.waiter_task
        if waiter_task is not None and waiter_task is not asyncio.current_task():
            await waiter_task

        self.store.remove_all()
        self.state.reset()

        emit_alarm_event(self.events, EventTypes.SCHEDULER_STOPPED, "")
        logger.info("Alarm scheduler stopped")

    async def status(self) -> SchedulerStatus:
        """Get scheduler status."""
        async with self.state.lock:
            return ops.get_status(self.store, self.state)

    # ============== Alarm Management ==============

    def _next_name(self) -> str:
        return f"{self.config.name_prefix}{next(self._names)}"

    async def submit(
        self,
        schedule: Schedule,
        listener: Any,
        *,
        name: str | None = None,
        fire_in_own_context: bool = False,
    ) -> AlarmRecord:
        """Add a new alarm.

        Args:
            schedule: When the alarm fires
            listener: Callable or object with handle_alarm(alarm)
            name: Alarm name; generated when omitted
            fire_in_own_context: Run the listener apart from the fire loop

        Returns:
            The queued record, usable as a handle for remove()

        Raises:
            PastDeadline: the first occurrence is 1 second away or less
            SchedulerStopped: the scheduler was stopped
        """
        if self.state.stopped:
            raise SchedulerStopped("Cannot add alarms to a stopped scheduler")
        resolve_handler(listener)

        async with self.state.lock:
            record = AlarmRecord.create(
                name if name is not None else self._next_name(),
                schedule,
                listener,
                now_ms=self.clock(),
                fire_in_own_context=fire_in_own_context,
            )
            ops.insert_alarm(self.store, self.state, self.events, record)

        return record

    async def add_at(
        self,
        when: datetime | int,
        listener: Any,
        **options: Any,
    ) -> AlarmRecord:
        """Add a one-time alarm at a datetime or epoch-millisecond timestamp."""
        if isinstance(when, datetime):
            schedule = AtSchedule.from_datetime(when)
        else:
            schedule = AtSchedule(at_ms=when)
        return await self.submit(schedule, listener, **options)

    async def add_delay(
        self,
        delay_minutes: int,
        listener: Any,
        repeating: bool = False,
        **options: Any,
    ) -> AlarmRecord:
        """Add an alarm firing ``delay_minutes`` from now, optionally repeating."""
        schedule = RelativeSchedule(delay_minutes=delay_minutes, repeating=repeating)
        return await self.submit(schedule, listener, **options)

    async def add_cron(
        self,
        expression: str,
        listener: Any,
        year: int | None = None,
        timezone: str | None = None,
        **options: Any,
    ) -> AlarmRecord:
        """Add an alarm from a five-field crontab expression."""
        schedule = CalendarSchedule.from_cron(
            expression,
            year=year,
            timezone=timezone or self.config.timezone,
        )
        return await self.submit(schedule, listener, **options)

    async def remove(self, handle: AlarmRecord) -> bool:
        """Remove an alarm.

        Args:
            handle: Record returned by submit()

        Returns:
            True if the alarm was queued (or firing) and is now removed
        """
        async with self.state.lock:
            return ops.remove_alarm(self.store, self.state, self.events, handle)

    async def remove_all(self) -> int:
        """Remove every queued alarm.

        Returns:
            Number of removed alarms
        """
        async with self.state.lock:
            return ops.remove_all_alarms(self.store, self.state, self.events)

    async def contains(self, handle: AlarmRecord) -> bool:
        """Whether an equal alarm is queued."""
        async with self.state.lock:
            return self.store.contains(handle)

    async def list(self) -> list[AlarmSnapshot]:
        """Ordered snapshot of the queued alarms."""
        async with self.state.lock:
            return self.store.snapshot()

    async def fire_due(self) -> list[AlarmSnapshot]:
        """Fire the earliest alarm and any further alarm that is already due.

        Normally called by the waiter only.
        """
        return await timer.fire_due(self)

    async def wait_detached(self) -> None:
        """Wait for listeners running in their own context."""
        await self.dispatcher.wait_detached()

    # ============== Thread Bridge ==============

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self.state.loop is None:
            raise RuntimeError("Scheduler not started")
        return self.state.loop

    def submit_threadsafe(
        self,
        schedule: Schedule,
        listener: Any,
        **options: Any,
    ) -> concurrent.futures.Future:
        """submit() from another thread; the future yields the record."""
        loop = self._require_loop()
        return asyncio.run_coroutine_threadsafe(
            self.submit(schedule, listener, **options), loop
        )

    def remove_threadsafe(self, handle: AlarmRecord) -> concurrent.futures.Future:
        """remove() from another thread; the future yields the found flag."""
        loop = self._require_loop()
        return asyncio.run_coroutine_threadsafe(self.remove(handle), loop)

    # ============== Event Handling ==============

    def on_event(self, handler: Callable[[SchedulerEvent], None]) -> None:
        """Register an event handler.

        Args:
            handler: Function to call when events are emitted
        """
        self.events.add_handler(handler)

    def off_event(self, handler: Callable[[SchedulerEvent], None]) -> None:
        """Unregister an event handler.

        Args:
            handler: Handler to remove
        """
        self.events.remove_handler(handler)
