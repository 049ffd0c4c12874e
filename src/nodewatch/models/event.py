"""Push notification models for the ZMQ event stream.

A ZMQ publisher on the node emits multipart messages ``[topic, body, seq]``.
[EventNotification][nodewatch.models.event.EventNotification] is the parsed
form of one message before it is stored;
[EventRecord][nodewatch.models.event.EventRecord] is the stored form, with a
buffer-assigned cursor and a bounded hex preview of the body.
[ReadResult][nodewatch.models.event.ReadResult] is what a long-poll read
returns to the consumer.

See Also:
    [EventBuffer][nodewatch.core.event_buffer.EventBuffer]: Assigns cursors
        and evicts records.
    [ZmqSubscriber][nodewatch.core.subscriber.ZmqSubscriber]: Produces
        notifications from the socket.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


_U32_MAX = 0xFFFFFFFF


@dataclass(frozen=True, slots=True)
class EventNotification:
    """One message received from the node's ZMQ publisher.

    Attributes:
        topic: Topic frame decoded as UTF-8 (invalid bytes replaced).
        body: Raw body frame.
        sequence: Publisher sequence number (little-endian u32 frame).
        timestamp: Unix time of receipt, in seconds.

    Raises:
        ValueError: If ``topic`` is empty, ``sequence`` does not fit in an
            unsigned 32-bit integer, or ``timestamp`` is negative.
    """

    topic: str
    body: bytes
    sequence: int
    timestamp: int

    def __post_init__(self) -> None:
        if not self.topic:
            raise ValueError("topic must not be empty")
        if not 0 <= self.sequence <= _U32_MAX:
            raise ValueError(f"sequence out of range: {self.sequence}")
        if self.timestamp < 0:
            raise ValueError(f"timestamp must be non-negative: {self.timestamp}")

    @classmethod
    def from_frames(cls, frames: list[bytes], timestamp: int) -> EventNotification | None:
        """Parse a multipart ZMQ message.

        Returns ``None`` for messages with fewer than three frames or an
        empty topic. A sequence frame shorter than four bytes yields
        sequence ``0``.
        """
        if len(frames) < 3:  # noqa: PLR2004
            return None
        topic = bytes(frames[0]).decode("utf-8", errors="replace")
        if not topic:
            return None
        seq_frame = frames[2]
        sequence = 0
        if len(seq_frame) >= 4:  # noqa: PLR2004
            sequence = int.from_bytes(seq_frame[:4], "little")
        return cls(topic=topic, body=bytes(frames[1]), sequence=sequence, timestamp=timestamp)


@dataclass(frozen=True, slots=True)
class EventRecord:
    """A notification stored in the [EventBuffer][nodewatch.core.event_buffer.EventBuffer].

    The body itself is not kept: only a hex preview of at most
    ``PREVIEW_BYTES`` bytes, its original size, and, for bodies of at
    least ``HASH_BYTES`` bytes, the hex of the leading hash.

    Attributes:
        cursor: Buffer position, unique and strictly increasing.
        topic: Notification topic.
        timestamp: Unix time of receipt, in seconds.
        sequence: Publisher sequence number.
        body_hex: Hex preview of the body.
        body_size: Size of the original body in bytes.
        event_hash: Hex of the first ``HASH_BYTES`` body bytes, or ``None``.
    """

    PREVIEW_BYTES: ClassVar[int] = 80
    HASH_BYTES: ClassVar[int] = 32

    cursor: int
    topic: str
    timestamp: int
    sequence: int
    body_hex: str
    body_size: int
    event_hash: str | None = None

    def __post_init__(self) -> None:
        if self.cursor < 1:
            raise ValueError(f"cursor must be positive: {self.cursor}")
        if self.body_size < 0:
            raise ValueError(f"body_size must be non-negative: {self.body_size}")

    @classmethod
    def from_notification(cls, cursor: int, notification: EventNotification) -> EventRecord:
        body = notification.body
        event_hash = body[: cls.HASH_BYTES].hex() if len(body) >= cls.HASH_BYTES else None
        return cls(
            cursor=cursor,
            topic=notification.topic,
            timestamp=notification.timestamp,
            sequence=notification.sequence,
            body_hex=body[: cls.PREVIEW_BYTES].hex(),
            body_size=len(body),
            event_hash=event_hash,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "body_hex": self.body_hex,
            "body_size": self.body_size,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
            "event_hash": self.event_hash,
            "cursor": self.cursor,
        }


@dataclass(frozen=True, slots=True)
class ReadResult:
    """Outcome of a long-poll read on the event buffer.

    Attributes:
        messages: Records newer than the requested cursor, oldest first.
            When ``truncated`` is set, every retained record.
        cursor: Latest cursor assigned by the buffer (``0`` if none yet).
        truncated: Records newer than the requested cursor were evicted
            before being read; the consumer must resynchronize.
        connected: Whether the upstream event source is connected.
        address: Upstream address, or ``None`` when disconnected.
        buffer_limit: Capacity of the buffer at read time.
    """

    messages: tuple[EventRecord, ...]
    cursor: int
    truncated: bool
    connected: bool
    address: str | None
    buffer_limit: int

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the event read endpoint's JSON shape."""
        return {
            "connected": self.connected,
            "address": self.address,
            "buffer_limit": self.buffer_limit,
            "cursor": self.cursor,
            "truncated": self.truncated,
            "messages": [record.to_dict() for record in self.messages],
        }
