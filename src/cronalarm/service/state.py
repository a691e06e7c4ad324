"""Runtime state of the alarm scheduler.

The lock guards the entry store and ``next_wake_at_ms`` together, so that
"insert, then retarget if it is the new earliest" is one step.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any


@dataclass
class SchedulerState:
    """Runtime state of the scheduler."""
    running: bool = False
    stopped: bool = False
    waiter_task: asyncio.Task | None = None
    loop: asyncio.AbstractEventLoop | None = None

    # Deadline the waiter sleeps toward; None means idle
    next_wake_at_ms: int | None = None
    wake_event: asyncio.Event = field(default_factory=asyncio.Event)

    # Record popped for dispatch and not yet reinserted
    firing: Any = None
    firing_cancelled: bool = False

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def reset(self) -> None:
        """Reset state after the waiter exits."""
        self.running = False
        self.waiter_task = None
        self.next_wake_at_ms = None
        self.firing = None
        self.firing_cancelled = False
        self.wake_event.clear()
