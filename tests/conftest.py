"""
Shared test fixtures.

Alarm times are built from naive local datetimes, the same wall clock the
engine uses when a schedule has no timezone.
"""

from __future__ import annotations

from datetime import datetime

import pytest

from cronalarm import AlarmScheduler, SchedulerConfig


def ms(*args: int) -> int:
    """Epoch milliseconds of a local wall-clock time."""
    return int(datetime(*args).timestamp() * 1000)


def wall(instant_ms: int) -> datetime:
    """Local wall-clock time of an epoch-millisecond instant."""
    return datetime.fromtimestamp(instant_ms / 1000)


class FakeClock:
    """Controllable millisecond clock."""

    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, delta_ms: int) -> int:
        self.now += delta_ms
        return self.now


# Monday, 15 January 2024, 10:30:15
T0 = ms(2024, 1, 15, 10, 30, 15)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def scheduler(clock: FakeClock) -> AlarmScheduler:
    """Scheduler on a fake clock; the waiter is not started."""
    return AlarmScheduler(SchedulerConfig(), clock=clock)
