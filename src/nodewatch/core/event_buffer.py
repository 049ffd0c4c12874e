"""Bounded, cursor-indexed store of ZMQ notifications with long-poll reads.

The [ZmqSubscriber][nodewatch.core.subscriber.ZmqSubscriber] is the only
writer; the dashboard's event reader is the consumer. Every published
notification gets the next cursor (starting at 1, never reused) and is
appended to a ring of at most ``capacity`` records; the oldest record is
evicted first.

A consumer remembers the last cursor it processed and calls
[read_since()][nodewatch.core.event_buffer.EventBuffer.read_since]. If
records newer than its cursor were evicted before it read them, the result
carries ``truncated=True`` together with every retained record, and the
consumer resynchronizes from the returned ``cursor``.

All mutations happen on the event loop thread without awaiting, so a read
always sees a consistent buffer. Results are immutable tuples.

See Also:
    [ReadResult][nodewatch.models.event.ReadResult]: The read outcome.
    [Dashboard][nodewatch.services.dashboard.Dashboard]: The consumer.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import ClassVar

from nodewatch.models.event import EventNotification, EventRecord, ReadResult

from .logger import Logger


class EventBuffer:
    """Fixed-capacity ring buffer of [EventRecord][nodewatch.models.event.EventRecord].

    Args:
        capacity: Maximum number of retained records (clamped to
            ``CAPACITY_BOUNDS``).

    Examples:
        ```python
        buffer = EventBuffer(capacity=100)
        buffer.mark_connected("tcp://127.0.0.1:28332")
        buffer.publish(notification)
        result = await buffer.read_since(0, max_wait=5.0)
        ```
    """

    CAPACITY_BOUNDS: ClassVar[tuple[int, int]] = (50, 100_000)

    def __init__(self, capacity: int = 5000) -> None:
        self._capacity = self._clamp(capacity)
        self._records: deque[EventRecord] = deque()
        self._next_cursor = 1
        self._connected = False
        self._address: str | None = None
        self._changed = asyncio.Event()
        self._evicted = 0
        self._logger = Logger("event_buffer")

    @classmethod
    def _clamp(cls, capacity: int) -> int:
        low, high = cls.CAPACITY_BOUNDS
        return max(low, min(high, capacity))

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def address(self) -> str | None:
        return self._address

    @property
    def latest_cursor(self) -> int:
        """Cursor of the most recently published record (``0`` if none)."""
        return self._next_cursor - 1

    @property
    def evicted(self) -> int:
        """Total number of records evicted since creation."""
        return self._evicted

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> tuple[EventRecord, ...]:
        """Copy of every retained record, oldest first."""
        return tuple(self._records)

    # -------------------------------------------------------------------------
    # Writer Side
    # -------------------------------------------------------------------------

    def publish(self, notification: EventNotification) -> EventRecord:
        """Append a notification, evicting the oldest record when full."""
        record = EventRecord.from_notification(self._next_cursor, notification)
        self._next_cursor += 1
        if len(self._records) >= self._capacity:
            self._records.popleft()
            self._evicted += 1
        self._records.append(record)
        self._notify()
        return record

    def set_capacity(self, capacity: int) -> int:
        """Change the capacity, trimming the oldest records if needed.

        Returns:
            The effective (clamped) capacity.
        """
        self._capacity = self._clamp(capacity)
        trimmed = 0
        while len(self._records) > self._capacity:
            self._records.popleft()
            trimmed += 1
        if trimmed:
            self._evicted += trimmed
            self._logger.info("buffer_trimmed", capacity=self._capacity, trimmed=trimmed)
        return self._capacity

    def mark_connected(self, address: str) -> None:
        self._connected = True
        self._address = address
        self._notify()

    def mark_disconnected(self) -> None:
        """Record upstream loss and wake every pending reader."""
        self._connected = False
        self._address = None
        self._notify()

    def _notify(self) -> None:
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    # -------------------------------------------------------------------------
    # Reader Side
    # -------------------------------------------------------------------------

    def _collect(self, cursor: int) -> ReadResult:
        latest = self.latest_cursor
        oldest = self._records[0].cursor if self._records else self._next_cursor
        # A cursor ahead of the buffer cannot be honoured either; resync from scratch.
        truncated = cursor + 1 < oldest or cursor > latest
        if truncated:
            messages = tuple(self._records)
        else:
            messages = tuple(r for r in self._records if r.cursor > cursor)
        return ReadResult(
            messages=messages,
            cursor=latest,
            truncated=truncated,
            connected=self._connected,
            address=self._address,
            buffer_limit=self._capacity,
        )

    async def read_since(self, cursor: int, max_wait: float = 0.0) -> ReadResult:
        """Return records newer than ``cursor``, waiting up to ``max_wait`` seconds.

        Returns immediately when new records exist, when the upstream
        source is disconnected, or when ``max_wait`` is zero. A publish or
        a disconnect during the wait wakes the reader.

        Args:
            cursor: Last cursor the consumer has processed (``0`` for none).
            max_wait: Long-poll bound in seconds.
        """
        deadline = time.monotonic() + max(0.0, max_wait)
        while True:
            result = self._collect(cursor)
            if result.messages or result.truncated or not self._connected:
                return result
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return result
            changed = self._changed
            try:
                await asyncio.wait_for(changed.wait(), timeout=remaining)
            except TimeoutError:
                return self._collect(cursor)
