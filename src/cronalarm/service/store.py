"""In-memory ordered alarm queue.

Entries are kept sorted by ``AlarmRecord.sort_key`` (fire time, then last
update time). The store has no lock of its own: the scheduler serializes
every access on its event loop under ``SchedulerState.lock``.
"""
from bisect import insort

from loguru import logger

from ..models import AlarmRecord
from ..types import AlarmSnapshot

logger = logger.bind(module="cronalarm.store")


class EntryStore:
    """Ordered collection of queued alarms."""

    def __init__(self):
        self._entries: list[AlarmRecord] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def insert(self, record: AlarmRecord) -> None:
        """Insert a record at its place in the queue."""
        insort(self._entries, record, key=AlarmRecord.sort_key)
        logger.debug(f"Queued {record.name} for {record.next_fire_at_ms}")

    def remove(self, record: AlarmRecord) -> bool:
        """Remove the first entry equal to ``record``.

        Returns:
            True if an entry was removed
        """
        for index, entry in enumerate(self._entries):
            if entry.same_alarm(record):
                del self._entries[index]
                return True
        return False

    def contains(self, record: AlarmRecord) -> bool:
        return any(entry.same_alarm(record) for entry in self._entries)

    def peek_earliest(self) -> AlarmRecord | None:
        return self._entries[0] if self._entries else None

    def pop_earliest(self) -> AlarmRecord | None:
        if not self._entries:
            return None
        return self._entries.pop(0)

    def next_fire_at_ms(self) -> int | None:
        """Fire time of the earliest entry, or None if the queue is empty."""
        return self._entries[0].next_fire_at_ms if self._entries else None

    def remove_all(self) -> int:
        """Clear the queue.

        Returns:
            Number of removed entries
        """
        count = len(self._entries)
        self._entries.clear()
        return count

    def snapshot(self) -> list[AlarmSnapshot]:
        """Ordered copy of the queue; changing it leaves the store untouched."""
        return [entry.snapshot() for entry in self._entries]
