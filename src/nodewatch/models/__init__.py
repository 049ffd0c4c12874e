"""Pure frozen dataclasses with zero I/O for node state and push events.

The models layer is the foundation of the diamond DAG. It has **no
dependencies** on any other nodewatch package, only the Python standard
library. Section summaries and event records use
``@dataclass(frozen=True, slots=True)``; validation happens in
``__post_init__`` or in ``from_*`` constructors so invalid instances never
escape.

Attributes:
    Snapshot: Mutable view with one summary per section and a peer map
        updated by upsert.
    ChainSummary, NetworkSummary, MempoolSummary, TrafficSummary,
        PeerSummary: Section summaries parsed from RPC results.
    EventNotification: Parsed ZMQ multipart message.
    EventRecord: Cursor-tagged notification stored in the event buffer.
    ReadResult: Long-poll read outcome with truncation signal.
    Topic, Section, Connectivity, SessionState, ApplyOutcome, ServiceName:
        Shared enumerations.

See Also:
    [nodewatch.models.snapshot][]: Section parsers and peer upsert.
    [nodewatch.models.event][]: Notification and record types.
    [nodewatch.models.constants][]: Enumerations and the topic table.
"""

from .constants import (
    ALL_SECTIONS,
    TOPIC_SECTIONS,
    ApplyOutcome,
    Connectivity,
    Section,
    ServiceName,
    SessionState,
    Topic,
)
from .event import EventNotification, EventRecord, ReadResult
from .snapshot import (
    ChainSummary,
    MempoolSummary,
    NetworkSummary,
    PeerDiff,
    PeerSummary,
    Snapshot,
    TrafficSummary,
)


__all__ = [
    "ALL_SECTIONS",
    "TOPIC_SECTIONS",
    "ApplyOutcome",
    "ChainSummary",
    "Connectivity",
    "EventNotification",
    "EventRecord",
    "MempoolSummary",
    "NetworkSummary",
    "PeerDiff",
    "PeerSummary",
    "ReadResult",
    "Section",
    "ServiceName",
    "SessionState",
    "Snapshot",
    "Topic",
    "TrafficSummary",
]
