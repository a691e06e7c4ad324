"""Alarm dispatcher: invokes listeners for fired alarms.

Supports two modes:
- inline: the listener runs on the fire loop, a slow listener delays every
  other due alarm
- own context: the listener runs in a separate task (coroutines) or worker
  thread (blocking callables), so sibling alarms are not delayed

Whatever the listener raises is caught and logged here and never reaches
the fire loop.
"""
import asyncio
import inspect
from typing import Any, Callable, Protocol

from loguru import logger

from ..models import AlarmRecord
from .events import EventEmitter, EventTypes, emit_alarm_event
from ..types import AlarmSnapshot

logger = logger.bind(module="cronalarm.dispatcher")


# ============== Protocol Definitions ==============

class AlarmListener(Protocol):
    """Protocol for objects notified when an alarm fires."""

    def handle_alarm(self, alarm: AlarmSnapshot) -> Any:
        """Handle a fired alarm. May return an awaitable."""
        ...


ListenerCallable = Callable[[AlarmSnapshot], Any]


def resolve_handler(listener: Any) -> Callable[[AlarmSnapshot], Any]:
    """Support both callables and objects with a handle_alarm method."""
    handler = getattr(listener, "handle_alarm", None)
    if callable(handler):
        return handler
    if callable(listener):
        return listener
    raise TypeError(f"Listener {listener!r} is neither callable nor has handle_alarm()")


def _is_async(handler: Callable[..., Any]) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


class Dispatcher:
    """Runs alarm listeners and isolates their failures."""

    def __init__(self, events: EventEmitter | None = None):
        self.events = events or EventEmitter()
        self._detached: set[asyncio.Task] = set()

    @property
    def detached_count(self) -> int:
        """Number of own-context firings still running."""
        return len(self._detached)

    async def dispatch(self, record: AlarmRecord) -> None:
        """Fire one alarm.

        Returns once an inline listener finished, or as soon as an
        own-context listener has been started.
        """
        alarm = record.snapshot()
        handler = resolve_handler(record.listener)

        emit_alarm_event(
            self.events,
            EventTypes.ALARM_FIRED,
            alarm.name,
            {"fire_at_ms": alarm.next_fire_at_ms, "detached": record.fire_in_own_context},
        )

        if not record.fire_in_own_context:
            await self._invoke(handler, alarm)
            return

        if _is_async(handler):
            task = asyncio.create_task(self._invoke(handler, alarm), name=f"alarm:{alarm.name}")
        else:
            task = asyncio.create_task(
                self._invoke_in_thread(handler, alarm), name=f"alarm:{alarm.name}"
            )
        self._detached.add(task)
        task.add_done_callback(self._detached.discard)

    async def _invoke(self, handler: Callable[[AlarmSnapshot], Any], alarm: AlarmSnapshot) -> None:
        try:
            result = handler(alarm)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self._report_failure(alarm, e)
        else:
            self._report_success(alarm, result)

    async def _invoke_in_thread(
        self, handler: Callable[[AlarmSnapshot], Any], alarm: AlarmSnapshot
    ) -> None:
        try:
            result = await asyncio.to_thread(handler, alarm)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            self._report_failure(alarm, e)
        else:
            self._report_success(alarm, result)

    def _report_success(self, alarm: AlarmSnapshot, result: Any) -> None:
        logger.debug(f"Alarm {alarm.name} handled")
        emit_alarm_event(
            self.events,
            EventTypes.ALARM_COMPLETED,
            alarm.name,
            {"result": str(result)[:500] if result is not None else None},
        )

    def _report_failure(self, alarm: AlarmSnapshot, error: Exception) -> None:
        logger.opt(exception=error).error(f"Listener for alarm {alarm.name} failed: {error}")
        emit_alarm_event(
            self.events,
            EventTypes.ALARM_FAILED,
            alarm.name,
            {"error": str(error)[:500], "error_type": type(error).__name__},
        )

    async def wait_detached(self) -> None:
        """Wait for all own-context firings to finish."""
        while self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)
