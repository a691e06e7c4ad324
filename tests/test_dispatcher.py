"""Tests for listener dispatch."""

from __future__ import annotations

import pytest

from conftest import T0
from cronalarm import AlarmRecord, Dispatcher, EventEmitter, EventTypes, RelativeSchedule
from cronalarm.service.dispatcher import resolve_handler


def make_record(listener, **kwargs) -> AlarmRecord:
    return AlarmRecord.create("job", RelativeSchedule(1), listener, now_ms=T0, **kwargs)


class AsyncListener:
    def __init__(self) -> None:
        self.names: list[str] = []

    async def handle_alarm(self, alarm) -> str:
        self.names.append(alarm.name)
        return "done"


class TestResolveHandler:
    def test_prefers_handle_alarm(self) -> None:
        listener = AsyncListener()
        assert resolve_handler(listener) == listener.handle_alarm

    def test_plain_callable(self) -> None:
        assert resolve_handler(print) is print

    def test_rejects_other_objects(self) -> None:
        with pytest.raises(TypeError):
            resolve_handler(42)


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_inline_listener_object(self) -> None:
        events = []
        emitter = EventEmitter()
        emitter.add_handler(events.append)
        listener = AsyncListener()

        await Dispatcher(emitter).dispatch(make_record(listener))

        assert listener.names == ["job"]
        assert [e.type for e in events] == [EventTypes.ALARM_FIRED, EventTypes.ALARM_COMPLETED]
        assert events[0].payload == {"fire_at_ms": T0 + 60_000, "detached": False}
        assert events[1].payload == {"result": "done"}

    @pytest.mark.asyncio
    async def test_failure_does_not_propagate(self) -> None:
        events = []
        emitter = EventEmitter()
        emitter.add_handler(events.append)

        def boom(alarm) -> None:
            raise KeyError("missing")

        await Dispatcher(emitter).dispatch(make_record(boom))

        assert events[-1].type == EventTypes.ALARM_FAILED
        assert events[-1].payload["error_type"] == "KeyError"

    @pytest.mark.asyncio
    async def test_detached_listener_object(self) -> None:
        dispatcher = Dispatcher()
        listener = AsyncListener()

        await dispatcher.dispatch(make_record(listener, fire_in_own_context=True))
        await dispatcher.wait_detached()

        assert listener.names == ["job"]
        assert dispatcher.detached_count == 0
