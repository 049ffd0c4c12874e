"""Mapping between snapshot sections, RPC calls, and ZMQ topics.

Each [Section][nodewatch.models.constants.Section] is refreshed by a fixed
group of RPC calls. A full refresh batches every group; a partial refresh
batches only the groups of the pending sections. Results are parsed per
section, so a failed or malformed call only affects its own section.

Calls per section:

| Section | Calls |
|---------|-------|
| chain   | ``getblockchaininfo``, ``uptime`` |
| network | ``getnetworkinfo`` |
| mempool | ``getmempoolinfo`` |
| traffic | ``getnettotals`` |
| peers   | ``getpeerinfo`` |
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from nodewatch.core.exceptions import RpcError, RpcInvalidResponseError
from nodewatch.core.rpc import RpcCall, RpcOutcome
from nodewatch.models.constants import TOPIC_SECTIONS, Section
from nodewatch.models.snapshot import (
    ChainSummary,
    MempoolSummary,
    NetworkSummary,
    PeerDiff,
    Snapshot,
    TrafficSummary,
)


SECTION_CALLS: MappingProxyType[Section, tuple[RpcCall, ...]] = MappingProxyType(
    {
        Section.CHAIN: (RpcCall("getblockchaininfo"), RpcCall("uptime")),
        Section.NETWORK: (RpcCall("getnetworkinfo"),),
        Section.MEMPOOL: (RpcCall("getmempoolinfo"),),
        Section.TRAFFIC: (RpcCall("getnettotals"),),
        Section.PEERS: (RpcCall("getpeerinfo"),),
    }
)


def sections_for_topics(topics: Iterable[str]) -> set[Section]:
    """Union of the sections invalidated by ``topics``; unknown topics add nothing."""
    stale: set[Section] = set()
    for topic in topics:
        stale |= TOPIC_SECTIONS.get(topic, frozenset())
    return stale


@dataclass(frozen=True, slots=True)
class SectionBatch:
    """RPC calls for a set of sections, with each section's slice of the batch."""

    sections: tuple[Section, ...]
    calls: tuple[RpcCall, ...]
    spans: dict[Section, slice]


@dataclass(slots=True)
class SectionResults:
    """Parsed values and per-section errors of one batch."""

    values: dict[Section, Any] = field(default_factory=dict)
    errors: dict[Section, RpcError] = field(default_factory=dict)

    @property
    def first_error(self) -> RpcError | None:
        return next(iter(self.errors.values()), None)


def build_batch(sections: Iterable[Section]) -> SectionBatch:
    """Build one batch covering ``sections`` in canonical section order."""
    wanted = set(sections)
    ordered = tuple(s for s in Section if s in wanted)
    calls: list[RpcCall] = []
    spans: dict[Section, slice] = {}
    for section in ordered:
        group = SECTION_CALLS[section]
        spans[section] = slice(len(calls), len(calls) + len(group))
        calls.extend(group)
    return SectionBatch(sections=ordered, calls=tuple(calls), spans=spans)


def _parse_section(section: Section, outcomes: Sequence[RpcOutcome]) -> Any:
    primary = outcomes[0].unwrap()
    match section:
        case Section.CHAIN:
            uptime = outcomes[1].result if len(outcomes) > 1 and outcomes[1].ok else None
            return ChainSummary.from_rpc(primary, uptime)
        case Section.NETWORK:
            return NetworkSummary.from_rpc(primary)
        case Section.MEMPOOL:
            return MempoolSummary.from_rpc(primary)
        case Section.TRAFFIC:
            return TrafficSummary.from_rpc(primary)
        case Section.PEERS:
            if not isinstance(primary, list):
                raise ValueError(f"expected peer list, got {type(primary).__name__}")
            return primary
    raise ValueError(f"unknown section: {section}")


def parse_batch(batch: SectionBatch, outcomes: Sequence[RpcOutcome]) -> SectionResults:
    """Split batch outcomes by section and parse each one.

    The ``uptime`` call of the chain section is optional: its failure only
    leaves ``uptime`` unset, and ``apply_results`` keeps the last known value.
    """
    results = SectionResults()
    for section in batch.sections:
        try:
            results.values[section] = _parse_section(section, outcomes[batch.spans[section]])
        except RpcError as e:
            results.errors[section] = e
        except (ValueError, TypeError, IndexError) as e:
            results.errors[section] = RpcInvalidResponseError(f"{section}: {e}")
    return results


def apply_results(snapshot: Snapshot, results: SectionResults) -> PeerDiff | None:
    """Write parsed values into ``snapshot``; returns the peer diff if peers were updated."""
    diff: PeerDiff | None = None
    for section, value in results.values.items():
        if section is Section.PEERS:
            diff = snapshot.upsert_peers(value)
        elif section is Section.CHAIN:
            previous = snapshot.chain
            if value.uptime is None and previous is not None:
                value = replace(value, uptime=previous.uptime)
            snapshot.set_section(section, value)
        else:
            snapshot.set_section(section, value)
    return diff
