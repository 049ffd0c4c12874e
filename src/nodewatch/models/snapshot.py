"""Materialized view of the remote node's state.

Each section of the [Snapshot][nodewatch.models.snapshot.Snapshot] is an
immutable summary parsed from one or two RPC results. Parsing happens in
the ``from_rpc`` class methods, which raise ``ValueError`` when a required
field is missing or has the wrong type, so that a malformed response for
one section never affects the others.

The snapshot itself is mutable but has a single writer, the
[Dashboard][nodewatch.services.dashboard.Dashboard] orchestrator, which
only writes after a generation check. Renderers should work on a
[copy()][nodewatch.models.snapshot.Snapshot.copy].

See Also:
    [nodewatch.services.dashboard.sections][]: Maps sections to RPC calls
        and feeds results into these parsers.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from typing import Any

from .constants import Section


def _field(data: dict[str, Any], key: str, kind: type | tuple[type, ...]) -> Any:
    """Fetch ``data[key]`` and check its type (bools are never numbers)."""
    if not isinstance(data, dict):
        raise ValueError(f"expected object, got {type(data).__name__}")
    if key not in data:
        raise ValueError(f"missing field: {key}")
    value = data[key]
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise ValueError(f"invalid type for {key}: bool")
    if not isinstance(value, kind):
        raise ValueError(f"invalid type for {key}: {type(value).__name__}")
    return value


@dataclass(frozen=True, slots=True)
class ChainSummary:
    """Result of ``getblockchaininfo`` plus ``uptime``."""

    chain: str
    blocks: int
    headers: int
    verification_progress: float
    uptime: int | None = None

    @classmethod
    def from_rpc(cls, info: dict[str, Any], uptime: Any = None) -> ChainSummary:
        return cls(
            chain=_field(info, "chain", str),
            blocks=_field(info, "blocks", int),
            headers=_field(info, "headers", int),
            verification_progress=float(_field(info, "verificationprogress", (int, float))),
            uptime=uptime if isinstance(uptime, int) and not isinstance(uptime, bool) else None,
        )


@dataclass(frozen=True, slots=True)
class NetworkSummary:
    """Result of ``getnetworkinfo``."""

    version: int
    subversion: str
    protocol_version: int
    connections: int

    @classmethod
    def from_rpc(cls, info: dict[str, Any]) -> NetworkSummary:
        return cls(
            version=_field(info, "version", int),
            subversion=_field(info, "subversion", str),
            protocol_version=_field(info, "protocolversion", int),
            connections=_field(info, "connections", int),
        )


@dataclass(frozen=True, slots=True)
class MempoolSummary:
    """Result of ``getmempoolinfo``."""

    transactions: int
    bytes: int
    usage: int
    max_mempool: int

    @classmethod
    def from_rpc(cls, info: dict[str, Any]) -> MempoolSummary:
        return cls(
            transactions=_field(info, "size", int),
            bytes=_field(info, "bytes", int),
            usage=_field(info, "usage", int),
            max_mempool=_field(info, "maxmempool", int),
        )


@dataclass(frozen=True, slots=True)
class TrafficSummary:
    """Result of ``getnettotals``."""

    bytes_recv: int
    bytes_sent: int

    @classmethod
    def from_rpc(cls, info: dict[str, Any]) -> TrafficSummary:
        return cls(
            bytes_recv=_field(info, "totalbytesrecv", int),
            bytes_sent=_field(info, "totalbytessent", int),
        )


@dataclass(frozen=True, slots=True)
class PeerSummary:
    """One entry of ``getpeerinfo``, reduced to what list views show.

    Attributes:
        id: Node-assigned peer id, the key for upserts.
        addr: Remote address (``"?"`` when absent).
        inbound: Whether the peer connected to us.
        connection_type: ``outbound-full-relay``, ``block-relay-only``, ...
        ping_time: Last ping in seconds, if measured.
        subver: Peer user agent.
    """

    id: int
    addr: str = "?"
    inbound: bool = False
    connection_type: str = "unknown"
    ping_time: float | None = None
    subver: str = ""

    @classmethod
    def from_rpc(cls, entry: dict[str, Any]) -> PeerSummary | None:
        """Parse one peer entry; entries without an integer ``id`` yield ``None``."""
        if not isinstance(entry, dict):
            return None
        peer_id = entry.get("id")
        if not isinstance(peer_id, int) or isinstance(peer_id, bool):
            return None
        ping = entry.get("pingtime")
        return cls(
            id=peer_id,
            addr=str(entry.get("addr") or "?"),
            inbound=bool(entry.get("inbound", False)),
            connection_type=str(entry.get("connection_type") or "unknown"),
            ping_time=float(ping) if isinstance(ping, (int, float)) else None,
            subver=str(entry.get("subver") or ""),
        )


@dataclass(frozen=True, slots=True)
class PeerDiff:
    """Ids touched by one [upsert_peers()][nodewatch.models.snapshot.Snapshot.upsert_peers] call."""

    added: tuple[int, ...] = ()
    updated: tuple[int, ...] = ()
    removed: tuple[int, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.removed)


@dataclass(slots=True)
class Snapshot:
    """Current view of the node, one attribute per [Section][nodewatch.models.constants.Section].

    Attributes:
        chain: Chain summary including uptime.
        network: Network summary.
        mempool: Mempool summary.
        traffic: Traffic totals.
        peers: Peer summaries keyed by id, in first-seen order.
        peer_details: Full ``getpeerinfo`` entry per peer id, for
            on-demand detail views.
        loaded: Set once a full refresh has been applied.
    """

    chain: ChainSummary | None = None
    network: NetworkSummary | None = None
    mempool: MempoolSummary | None = None
    traffic: TrafficSummary | None = None
    peers: dict[int, PeerSummary] = field(default_factory=dict)
    peer_details: dict[int, dict[str, Any]] = field(default_factory=dict)
    loaded: bool = False

    def set_section(self, section: Section, value: Any) -> None:
        """Overwrite a non-peer section with a parsed summary."""
        if section is Section.PEERS:
            raise ValueError("use upsert_peers() for the peers section")
        setattr(self, section.value, value)

    def upsert_peers(self, entries: list[dict[str, Any]]) -> PeerDiff:
        """Merge a fresh ``getpeerinfo`` result into the peer list.

        Peers are updated in place by id, new ids are appended, and ids
        no longer reported are removed. An entry whose summary and detail
        are both unchanged keeps its existing objects.
        """
        added: list[int] = []
        updated: list[int] = []
        seen: set[int] = set()

        for entry in entries:
            peer = PeerSummary.from_rpc(entry)
            if peer is None or peer.id in seen:
                continue
            seen.add(peer.id)
            current = self.peers.get(peer.id)
            if current is None:
                added.append(peer.id)
            elif current == peer and self.peer_details.get(peer.id) == entry:
                continue
            else:
                updated.append(peer.id)
            self.peers[peer.id] = peer
            self.peer_details[peer.id] = entry

        removed = [peer_id for peer_id in self.peers if peer_id not in seen]
        for peer_id in removed:
            del self.peers[peer_id]
            self.peer_details.pop(peer_id, None)

        return PeerDiff(added=tuple(added), updated=tuple(updated), removed=tuple(removed))

    def copy(self) -> Snapshot:
        """Return an independent copy safe to hand to renderers."""
        return Snapshot(
            chain=self.chain,
            network=self.network,
            mempool=self.mempool,
            traffic=self.traffic,
            peers=dict(self.peers),
            peer_details=copy.deepcopy(self.peer_details),
            loaded=self.loaded,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize summaries (not peer details) to plain JSON types."""
        return {
            "loaded": self.loaded,
            "chain": asdict(self.chain) if self.chain else None,
            "network": asdict(self.network) if self.network else None,
            "mempool": asdict(self.mempool) if self.mempool else None,
            "traffic": asdict(self.traffic) if self.traffic else None,
            "peers": [asdict(peer) for peer in self.peers.values()],
        }
