"""Alarm lifecycle events.

Handlers are plain callables receiving a SchedulerEvent. They run
synchronously on the event loop, right where the change happens; a handler
that raises is logged and skipped, the remaining handlers still run.
"""
from typing import Any, Callable

from loguru import logger

from ..schedule import now_ms
from ..types import SchedulerEvent

logger = logger.bind(module="cronalarm.events")


EventHandler = Callable[[SchedulerEvent], None]


class EventTypes:
    """Event type names, ``<subject>.<change>``."""

    SCHEDULER_STARTED = "scheduler.started"
    SCHEDULER_STOPPED = "scheduler.stopped"

    # queue changes
    ALARM_ADDED = "alarm.added"
    ALARM_REMOVED = "alarm.removed"
    ALARM_RESCHEDULED = "alarm.rescheduled"

    # listener outcome
    ALARM_FIRED = "alarm.fired"
    ALARM_COMPLETED = "alarm.completed"
    ALARM_FAILED = "alarm.failed"


class EventEmitter:
    """Fan-out of scheduler events to registered handlers.

    ``clock`` stamps the events; it should be the scheduler's clock so event
    times line up with fire times.
    """

    def __init__(self, clock: Callable[[], int] | None = None):
        self.clock = clock or now_ms
        self._handlers: list[EventHandler] = []

    def add_handler(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def remove_handler(self, handler: EventHandler) -> None:
        """Unregister ``handler``; unknown handlers are ignored."""
        try:
            self._handlers.remove(handler)
        except ValueError:
            logger.debug(f"Event handler {handler!r} was not registered")

    def emit(self, event: SchedulerEvent) -> None:
        # copy: a handler may unregister itself
        for handler in tuple(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Handler for {event.type} ({event.alarm_name or '-'}) failed: {e}")


def emit_alarm_event(
    emitter: EventEmitter,
    event_type: str,
    alarm_name: str,
    payload: dict[str, Any] | None = None,
) -> None:
    """Build a SchedulerEvent stamped with the emitter's clock and emit it.

    Args:
        emitter: Target emitter
        event_type: One of the EventTypes names
        alarm_name: Alarm the event is about; empty for scheduler events
        payload: Extra details, e.g. ``next_fire_at_ms`` or ``error``
    """
    emitter.emit(
        SchedulerEvent(
            type=event_type,
            alarm_name=alarm_name,
            timestamp_ms=emitter.clock(),
            payload=dict(payload) if payload else {},
        )
    )
