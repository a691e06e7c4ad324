"""Scheduler service package.

This package contains the core scheduler components:
- state.py: Runtime state shared by the scheduler and the waiter
- store.py: Ordered in-memory alarm queue
- ops.py: Core operations (insert, remove, status)
- timer.py: Waiter loop and fire loop
- dispatcher.py: Listener invocation and failure isolation
- events.py: Event system
"""
from .service import AlarmScheduler

__all__ = ["AlarmScheduler"]
