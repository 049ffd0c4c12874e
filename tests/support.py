"""Test helpers shared across the suite (importable as ``support``)."""

from __future__ import annotations

import asyncio
import copy
import heapq
from collections.abc import Sequence
from typing import Any

from nodewatch.core.exceptions import RpcError
from nodewatch.core.rpc import RpcCall, RpcOutcome
from nodewatch.core.runtime import RuntimeConfig
from nodewatch.models.event import EventNotification


# ============================================================================
# Manual Clock
# ============================================================================


async def settle(rounds: int = 20) -> None:
    """Let ready tasks run until the loop is quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock:
    """Clock whose time only moves on ``advance()``.

    ``sleep()`` parks the caller on a future that is resolved when the
    clock is advanced past its deadline. Sleepers wake in deadline order,
    and the loop is drained after each wake-up so callbacks can react
    before the next one fires.
    """

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self._sleepers: list[tuple[float, int, asyncio.Future[None]]] = []
        self._seq = 0

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        if delay <= 0:
            await asyncio.sleep(0)
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self.now + delay, self._seq, future))
        self._seq += 1
        await future

    @property
    def sleepers(self) -> int:
        return sum(1 for _, _, f in self._sleepers if not f.done())

    async def advance(self, seconds: float) -> None:
        target = self.now + seconds
        await settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            self.now = max(self.now, deadline)
            if not future.done():
                future.set_result(None)
            await settle()
        self.now = target
        await settle()


# ============================================================================
# Sample RPC Results
# ============================================================================


BLOCKCHAIN_INFO: dict[str, Any] = {
    "chain": "main",
    "blocks": 850_000,
    "headers": 850_002,
    "verificationprogress": 0.99999,
    "bestblockhash": "00" * 32,
}

NETWORK_INFO: dict[str, Any] = {
    "version": 270000,
    "subversion": "/Satoshi:27.0.0/",
    "protocolversion": 70016,
    "connections": 2,
}

MEMPOOL_INFO: dict[str, Any] = {
    "size": 1500,
    "bytes": 620_000,
    "usage": 1_800_000,
    "maxmempool": 300_000_000,
}

NET_TOTALS: dict[str, Any] = {
    "totalbytesrecv": 123_456,
    "totalbytessent": 654_321,
}

PEER_INFO: list[dict[str, Any]] = [
    {
        "id": 1,
        "addr": "10.0.0.5:8333",
        "inbound": False,
        "connection_type": "outbound-full-relay",
        "pingtime": 0.042,
        "subver": "/Satoshi:27.0.0/",
    },
    {
        "id": 2,
        "addr": "192.168.1.20:51234",
        "inbound": True,
        "connection_type": "inbound",
        "subver": "/Satoshi:26.1.0/",
    },
]

UPTIME = 86_400


def rpc_results() -> dict[str, Any]:
    """Fresh copy of a healthy node's results, keyed by method."""
    return copy.deepcopy(
        {
            "getblockchaininfo": BLOCKCHAIN_INFO,
            "uptime": UPTIME,
            "getnetworkinfo": NETWORK_INFO,
            "getmempoolinfo": MEMPOOL_INFO,
            "getnettotals": NET_TOTALS,
            "getpeerinfo": PEER_INFO,
        }
    )


# ============================================================================
# Notifications
# ============================================================================


def make_notification(
    topic: str = "hashtx", body: bytes = b"\x11" * 32, sequence: int = 0, timestamp: int = 1
) -> EventNotification:
    return EventNotification(topic=topic, body=body, sequence=sequence, timestamp=timestamp)


# ============================================================================
# Fake RPC Gateway
# ============================================================================


FULL_BATCH = (
    "getblockchaininfo",
    "uptime",
    "getnetworkinfo",
    "getmempoolinfo",
    "getnettotals",
    "getpeerinfo",
)


class FakeGateway:
    """Stand-in for RpcGateway answering from a method -> result table.

    Attributes:
        batches: Method tuples of every batch received, in order.
        gate: When set, every batch waits on it before answering.
        fail: Raised by batch()/call() instead of answering.
        errors: Per-method errors reported inside batch outcomes.
    """

    def __init__(self, runtime: RuntimeConfig, results: dict[str, Any]) -> None:
        self.runtime = runtime
        self.results = results
        self.batches: list[tuple[str, ...]] = []
        self.probes: list[str] = []
        self.gate: asyncio.Event | None = None
        self.fail: Exception | None = None
        self.errors: dict[str, RpcError] = {}
        self.closed = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    async def __aenter__(self) -> FakeGateway:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    def hold(self) -> asyncio.Event:
        """Make subsequent batches block until the returned event is set."""
        self.gate = asyncio.Event()
        return self.gate

    def release(self) -> None:
        if self.gate is not None:
            self.gate.set()

    async def call(self, method: str, params: Sequence[Any] = ()) -> Any:
        self.probes.append(method)
        if self.fail is not None:
            raise self.fail
        return copy.deepcopy(self.results[method])

    async def batch(self, calls: Sequence[RpcCall]) -> list[RpcOutcome]:
        self.batches.append(tuple(c.method for c in calls))
        self._in_flight += 1
        self._idle.clear()
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail is not None:
                raise self.fail
            return [
                RpcOutcome(error=self.errors[c.method])
                if c.method in self.errors
                else RpcOutcome(result=copy.deepcopy(self.results[c.method]))
                for c in calls
            ]
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    async def wait_idle(self) -> None:
        await self._idle.wait()

    async def close(self) -> None:
        self.closed = True


class FakeGatewayFactory:
    """Gateway factory recording every gateway it builds.

    ``fail`` is copied onto newly built gateways, which is how connect
    probes are made to fail.
    """

    def __init__(self) -> None:
        self.gateways: list[FakeGateway] = []
        self.results = rpc_results()
        self.fail: Exception | None = None

    def __call__(self, runtime: RuntimeConfig) -> FakeGateway:
        gateway = FakeGateway(runtime, self.results)
        gateway.fail = self.fail
        self.gateways.append(gateway)
        return gateway

    @property
    def last(self) -> FakeGateway:
        return self.gateways[-1]
