"""Shared constants for the models layer.

Defines the enumerations used across the dashboard engine: the ZMQ topics
published by the node, the snapshot sections they invalidate, and the
state tags reported by the orchestrator. Placing them here avoids circular
dependencies between the models, core, and services layers.

See Also:
    [TOPIC_SECTIONS][nodewatch.models.constants.TOPIC_SECTIONS]:
        Maps each [Topic][nodewatch.models.constants.Topic] to the
        [Section][nodewatch.models.constants.Section] values it invalidates.
    [nodewatch.models.snapshot][]: Stores one sub-record per
        [Section][nodewatch.models.constants.Section].
"""

from __future__ import annotations

from enum import StrEnum
from types import MappingProxyType


class Topic(StrEnum):
    """ZMQ notification topics published by a Bitcoin Core node.

    Attributes:
        HASHBLOCK: 32-byte hash of a newly connected block.
        HASHTX: 32-byte hash of a transaction entering the mempool or a block.
        RAWBLOCK: Serialized block.
        RAWTX: Serialized transaction.
        SEQUENCE: Mempool and chain sequence notifications.
    """

    HASHBLOCK = "hashblock"
    HASHTX = "hashtx"
    RAWBLOCK = "rawblock"
    RAWTX = "rawtx"
    SEQUENCE = "sequence"


class Section(StrEnum):
    """Independently refreshable parts of the [Snapshot][nodewatch.models.snapshot.Snapshot].

    Attributes:
        CHAIN: Blockchain summary plus node uptime.
        NETWORK: Node version and connection count.
        MEMPOOL: Mempool size and memory usage.
        TRAFFIC: Total bytes received and sent.
        PEERS: Connected peer list with per-peer detail.
    """

    CHAIN = "chain"
    NETWORK = "network"
    MEMPOOL = "mempool"
    TRAFFIC = "traffic"
    PEERS = "peers"


class Connectivity(StrEnum):
    """RPC connectivity indicator exposed to renderers.

    Attributes:
        UNKNOWN: No refresh has completed in the current generation.
        OK: The most recent refresh succeeded.
        DEGRADED: The most recent refresh failed; the snapshot holds
            the last good values.
    """

    UNKNOWN = "unknown"
    OK = "ok"
    DEGRADED = "degraded"


class SessionState(StrEnum):
    """Orchestrator session state."""

    IDLE = "idle"
    POLLING = "polling"


class ApplyOutcome(StrEnum):
    """Result of trying to apply a completed asynchronous operation.

    Attributes:
        APPLIED: The result was written to the snapshot.
        DISCARDED_STALE: The operation captured a generation that is no
            longer current and its result was dropped.
    """

    APPLIED = "applied"
    DISCARDED_STALE = "discarded_stale"


class ServiceName(StrEnum):
    """Canonical service identifiers used in logging and metrics labels."""

    DASHBOARD = "dashboard"


ALL_SECTIONS: frozenset[Section] = frozenset(Section)

TOPIC_SECTIONS: MappingProxyType[str, frozenset[Section]] = MappingProxyType(
    {
        Topic.HASHBLOCK: frozenset({Section.CHAIN, Section.MEMPOOL}),
        Topic.RAWBLOCK: frozenset({Section.CHAIN, Section.MEMPOOL}),
        Topic.HASHTX: frozenset({Section.MEMPOOL}),
        Topic.RAWTX: frozenset({Section.MEMPOOL}),
        Topic.SEQUENCE: frozenset({Section.MEMPOOL}),
    }
)
