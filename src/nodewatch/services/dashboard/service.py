"""Dashboard service: keeps a live snapshot of a Bitcoin Core node.

The [Dashboard][nodewatch.services.dashboard.Dashboard] is the refresh
orchestrator. It combines three independently cancelable activities,
coordinated through generation-tagged state rather than by calling into
each other:

1. **Full refresh scheduler**: ``run_forever()`` issues one batched RPC
   call covering every section each cycle. While the ZMQ source is
   connected the interval widens to ``max(poll_interval,
   event_fallback_interval)``; a connectivity change re-derives the
   current wait immediately.
2. **Event reader**: long-polls the
   [EventBuffer][nodewatch.core.event_buffer.EventBuffer], maps topics to
   stale sections, and adds them to the pending set.
3. **Debounce timer**: fires ``debounce`` seconds after the first hint of
   a burst and drains the pending set into one partial batch. The peers
   section is additionally limited to one refresh per
   ``peers_min_interval``.

Every session or reconfiguration starts a new generation. Each refresh
captures the generation it was issued under and its result is applied
only if that generation is still current
([ApplyOutcome][nodewatch.models.constants.ApplyOutcome]); results from an
old target are silently discarded, never written.

Refresh failures never escape: they leave the snapshot untouched, mark
connectivity ``degraded``, and the next cycle retries.

See Also:
    [DashboardConfig][nodewatch.services.dashboard.DashboardConfig]:
        Configuration model.
    [RpcGateway][nodewatch.core.rpc.RpcGateway]: Executes the batches.
    [nodewatch.services.dashboard.sections][]: Section to RPC call table.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections import deque
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, ClassVar

from nodewatch.core.base_service import BaseService
from nodewatch.core.clock import Clock, DebounceTimer, SystemClock, TimerState
from nodewatch.core.event_buffer import EventBuffer
from nodewatch.core.rpc import RpcGateway
from nodewatch.core.runtime import RuntimeConfig, ensure_safe_host
from nodewatch.core.subscriber import EventSink, ZmqSubscriber
from nodewatch.models.constants import (
    ALL_SECTIONS,
    ApplyOutcome,
    Connectivity,
    Section,
    ServiceName,
    SessionState,
)
from nodewatch.models.snapshot import Snapshot
from nodewatch.utils.host import HostSafetyValidator

from .configs import DashboardConfig
from .sections import SectionResults, apply_results, build_batch, parse_batch, sections_for_topics


if TYPE_CHECKING:
    from types import TracebackType

    from nodewatch.models.event import EventRecord, ReadResult


GatewayFactory = Callable[[RuntimeConfig], RpcGateway]
SubscriberFactory = Callable[[str, EventSink], ZmqSubscriber]
UpdateListener = Callable[[frozenset[Section]], None]


class Dashboard(BaseService[DashboardConfig]):
    """Refresh orchestrator for one node.

    Lifecycle:
        1. ``__aenter__``: start the read API when enabled.
        2. First ``run()``: start the session (generation 1) with the
           configured [RuntimeConfig][nodewatch.core.runtime.RuntimeConfig]
           and wait for the initial full refresh.
        3. Later ``run()`` calls: one full refresh per cycle.
        4. [reconfigure()][nodewatch.services.dashboard.Dashboard.reconfigure]
           at any time: validate, then start a new generation.
           Session transitions (start, reconfigure, stop) are serialized.
        5. ``__aexit__``: stop the session, subscriber, and API.

    Args:
        config: Service configuration.
        clock: Time source for debounce and pacing delays.
        validator: Host safety validator; defaults to one honouring
            ``DANGER_INSECURE_RPC``.
        gateway_factory: Builds an [RpcGateway][nodewatch.core.rpc.RpcGateway]
            per generation.
        subscriber_factory: Builds a
            [ZmqSubscriber][nodewatch.core.subscriber.ZmqSubscriber] for an
            address.

    Raises:
        UnsafeHostError: If the initial runtime URL fails validation.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.DASHBOARD
    CONFIG_CLASS: ClassVar[type[DashboardConfig]] = DashboardConfig

    def __init__(
        self,
        config: DashboardConfig | None = None,
        *,
        clock: Clock | None = None,
        validator: HostSafetyValidator | None = None,
        gateway_factory: GatewayFactory | None = None,
        subscriber_factory: SubscriberFactory | None = None,
    ) -> None:
        super().__init__(config)
        self._clock: Clock = clock or SystemClock()
        self._validator = validator or HostSafetyValidator.from_env()
        self._gateway_factory = gateway_factory or self._default_gateway
        self._subscriber_factory = subscriber_factory or self._default_subscriber
        self._runtime = ensure_safe_host(self._config.runtime, self._validator)

        timing = self._config.timing
        self._buffer = EventBuffer(self._runtime.zmq_buffer_limit)
        self._snapshot = Snapshot()
        self._generation = 0
        self._state = SessionState.IDLE
        self._gateway: RpcGateway | None = None
        self._subscriber: ZmqSubscriber | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._session_lock = asyncio.Lock()

        self._pending: set[Section] = set()
        self._debounce = DebounceTimer(timing.debounce, self._on_debounce, self._clock)
        self._full_task: asyncio.Task[ApplyOutcome] | None = None
        self._full_generation = 0
        self._full_again = False
        self._partial_generation: int | None = None
        self._last_peers_refresh: float | None = None

        self._cursor = 0
        self._event_connected = False
        self._recent_events: deque[EventRecord] = deque(maxlen=timing.recent_events)
        self._events_seen = 0

        self._connectivity = Connectivity.UNKNOWN
        self._last_error: str | None = None
        self._selected_peer: int | None = None
        self._listeners: list[UpdateListener] = []
        self._api_task: asyncio.Task[None] | None = None

    def _default_gateway(self, runtime: RuntimeConfig) -> RpcGateway:
        return RpcGateway(runtime, validator=self._validator)

    def _default_subscriber(self, address: str, sink: EventSink) -> ZmqSubscriber:
        return ZmqSubscriber(address, sink, topics=self._config.topics)

    # -------------------------------------------------------------------------
    # Read-only State
    # -------------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def runtime(self) -> RuntimeConfig:
        return self._runtime

    @property
    def snapshot(self) -> Snapshot:
        """A copy of the current snapshot."""
        return self._snapshot.copy()

    @property
    def connectivity(self) -> Connectivity:
        return self._connectivity

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def event_connected(self) -> bool:
        return self._event_connected

    @property
    def pending_sections(self) -> frozenset[Section]:
        return frozenset(self._pending)

    @property
    def buffer(self) -> EventBuffer:
        return self._buffer

    @property
    def recent_events(self) -> tuple[EventRecord, ...]:
        """Newest event records seen by the reader, oldest first."""
        return tuple(self._recent_events)

    @property
    def selected_peer(self) -> int | None:
        return self._selected_peer

    def status(self) -> dict[str, Any]:
        """Orchestrator state for renderers and the read API."""
        return {
            "state": self._state.value,
            "generation": self._generation,
            "connectivity": self._connectivity.value,
            "last_error": self._last_error,
            "rpc_url": self._runtime.url,
            "wallet": self._runtime.wallet or None,
            "event_connected": self._event_connected,
            "event_address": self._buffer.address,
            "event_cursor": self._cursor,
            "events_seen": self._events_seen,
            "pending_sections": sorted(self._pending),
            "selected_peer": self._selected_peer,
        }

    # -------------------------------------------------------------------------
    # Listeners and Peer Selection
    # -------------------------------------------------------------------------

    def add_listener(self, listener: UpdateListener) -> None:
        """Call ``listener`` with the applied sections after every applied refresh."""
        self._listeners.append(listener)

    def remove_listener(self, listener: UpdateListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def _notify_listeners(self, sections: frozenset[Section]) -> None:
        for listener in list(self._listeners):
            try:
                listener(sections)
            except Exception as e:  # Listener error boundary
                self._logger.error("listener_failed", error=str(e), error_type=type(e).__name__)

    def select_peer(self, peer_id: int | None) -> bool:
        """Select a peer for detail display; returns False for an unknown id."""
        if peer_id is not None and peer_id not in self._snapshot.peers:
            return False
        self._selected_peer = peer_id
        return True

    def peer_detail(self, peer_id: int) -> dict[str, Any] | None:
        """Full ``getpeerinfo`` entry for ``peer_id``, or ``None``."""
        detail = self._snapshot.peer_details.get(peer_id)
        return dict(detail) if detail is not None else None

    # -------------------------------------------------------------------------
    # Session and Generations
    # -------------------------------------------------------------------------

    async def start_session(self, runtime: RuntimeConfig | None = None) -> int:
        """Enter ``polling`` and issue the first full refresh.

        No-op returning the current generation when already polling.

        Raises:
            UnsafeHostError: If ``runtime`` fails host validation.
        """
        async with self._session_lock:
            if self._state is SessionState.POLLING:
                return self._generation
            runtime = ensure_safe_host(runtime or self._runtime, self._validator)
            generation = await self._begin_generation(runtime)
        self._logger.info(
            "session_started",
            generation=generation,
            url=runtime.url,
            wallet=runtime.wallet or None,
            zmq_address=runtime.zmq_address or None,
        )
        return generation

    async def reconfigure(self, runtime: RuntimeConfig) -> int:
        """Replace the runtime configuration and start a new generation.

        The new URL is validated first; on rejection nothing changes and
        the current session keeps running against the prior target.
        In-flight refreshes of older generations are left to finish and
        their results are discarded.

        Returns:
            The new generation.

        Raises:
            UnsafeHostError: If the new URL fails host validation.
        """
        ensure_safe_host(runtime, self._validator)
        async with self._session_lock:
            generation = await self._begin_generation(runtime)
        self._logger.info(
            "config_changed",
            generation=generation,
            url=runtime.url,
            wallet=runtime.wallet or None,
            zmq_address=runtime.zmq_address or None,
            poll_interval=runtime.poll_interval,
        )
        return generation

    async def connect(self, runtime: RuntimeConfig) -> int:
        """Probe ``runtime`` with ``getblockchaininfo``, then reconfigure to it.

        Raises:
            UnsafeHostError: If the URL fails host validation.
            RpcError: If the probe call fails; the session is unchanged.
        """
        ensure_safe_host(runtime, self._validator)
        async with self._gateway_factory(runtime) as probe:
            await probe.call("getblockchaininfo")
        return await self.reconfigure(runtime)

    async def stop_session(self) -> None:
        """Return to ``idle``: cancel timers and the reader, stop the subscriber."""
        async with self._session_lock:
            if self._state is SessionState.IDLE:
                return
            generation = self._advance_generation()
            self._state = SessionState.IDLE
            await self._stop_subscriber()
            self._retire_gateway()
            self._set_event_connected(False)
        self._logger.info("session_stopped", generation=generation)

    async def _begin_generation(self, runtime: RuntimeConfig) -> int:
        gateway = self._gateway_factory(runtime)
        generation = self._advance_generation()

        self._runtime = runtime
        self._state = SessionState.POLLING
        self._retire_gateway()
        self._gateway = gateway
        self._connectivity = Connectivity.UNKNOWN
        self._last_error = None
        self._buffer.set_capacity(runtime.zmq_buffer_limit)
        await self._sync_subscriber(runtime)

        self._reader_task = asyncio.create_task(self._read_events(generation))
        self.request_full_refresh()
        self.wake(restart=True)

        self.set_gauge("generation", generation)
        return generation

    def _advance_generation(self) -> int:
        """Start a new generation and cancel everything tied to older ones."""
        self._generation += 1
        self._debounce.cancel()
        if self._reader_task is not None:
            self._reader_task.cancel()
            self._reader_task = None
        self._pending.clear()
        self._full_again = False
        self.set_gauge("pending_sections", 0)
        return self._generation

    async def _sync_subscriber(self, runtime: RuntimeConfig) -> None:
        address = runtime.zmq_address
        current = self._subscriber
        if current is not None and current.address == address and current.running:
            return

        await self._stop_subscriber()
        if not address:
            self._recent_events.clear()
            self._cursor = self._buffer.latest_cursor
            self._set_event_connected(False)
            return

        self._subscriber = self._subscriber_factory(address, self._buffer)
        self._subscriber.start()

    async def _stop_subscriber(self) -> None:
        subscriber, self._subscriber = self._subscriber, None
        if subscriber is not None:
            await subscriber.stop()

    def _retire_gateway(self) -> None:
        gateway, self._gateway = self._gateway, None
        if gateway is not None:
            self._spawn(self._close_when_idle(gateway))

    @staticmethod
    async def _close_when_idle(gateway: RpcGateway) -> None:
        await gateway.wait_idle()
        await gateway.close()

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # -------------------------------------------------------------------------
    # Full Refresh
    # -------------------------------------------------------------------------

    def cycle_interval(self) -> float:
        """Full refresh interval, widened while the event source is connected."""
        poll = self._runtime.poll_interval
        if self._event_connected:
            return max(poll, self._config.timing.event_fallback_interval)
        return poll

    async def run(self) -> None:
        """One scheduler tick: start the session if idle, else one full refresh."""
        if self._state is SessionState.IDLE:
            await self.start_session()
            task = self._full_task
        else:
            task = self.request_full_refresh()
        if task is not None:
            await task

    def request_full_refresh(self) -> asyncio.Task[ApplyOutcome] | None:
        """Issue a full refresh, or coalesce into the one already in flight.

        Returns:
            The task carrying the refresh for the current generation, or
            ``None`` when idle.
        """
        if self._state is SessionState.IDLE or self._gateway is None:
            return None
        generation = self._generation
        task = self._full_task
        if task is not None and not task.done() and self._full_generation == generation:
            self._full_again = True
            self._logger.debug("full_refresh_coalesced", generation=generation)
            return task

        self._full_again = False
        self._full_generation = generation
        self._full_task = asyncio.create_task(self._full_refresh(generation, self._gateway))
        return self._full_task

    async def _full_refresh(self, generation: int, gateway: RpcGateway) -> ApplyOutcome:
        try:
            return await self._execute(generation, gateway, ALL_SECTIONS, "full")
        finally:
            if generation == self._generation:
                again, self._full_again = self._full_again, False
                if self._full_task is asyncio.current_task():
                    self._full_task = None
                if again:
                    self.request_full_refresh()
                self._rearm_pending()

    # -------------------------------------------------------------------------
    # Partial Refresh
    # -------------------------------------------------------------------------

    def hint(self, sections: Iterable[Section]) -> bool:
        """Mark sections stale and arm the debounce timer.

        Returns:
            True if the hint was accepted (session polling, sections given).
        """
        if self._state is SessionState.IDLE:
            return False
        stale = set(sections)
        if not stale:
            return False
        self._pending |= stale
        self.set_gauge("pending_sections", len(self._pending))
        self._debounce.arm()
        return True

    async def _on_debounce(self) -> None:
        await self.flush_partial()

    def _refresh_in_flight(self) -> bool:
        full = self._full_task
        full_running = (
            full is not None and not full.done() and self._full_generation == self._generation
        )
        return full_running or self._partial_generation == self._generation

    def _rearm_pending(self) -> None:
        if (
            self._state is SessionState.POLLING
            and self._pending
            and self._debounce.state is not TimerState.ARMED
        ):
            self._debounce.arm()

    def _peers_recently_refreshed(self) -> bool:
        last = self._last_peers_refresh
        if last is None:
            return False
        return self._clock.monotonic() - last < self._config.timing.peers_min_interval

    async def flush_partial(self) -> ApplyOutcome | None:
        """Drain the pending set into one partial batch.

        Deferred (set kept) while another refresh of this generation is in
        flight. Replaced by a full refresh until full data has loaded once.

        Returns:
            The apply outcome, or ``None`` when nothing was issued.
        """
        if self._state is SessionState.IDLE or not self._pending or self._gateway is None:
            return None
        if self._refresh_in_flight():
            return None
        if not self._snapshot.loaded:
            self._pending.clear()
            self.request_full_refresh()
            return None

        sections = set(self._pending)
        self._pending.clear()
        self.set_gauge("pending_sections", 0)
        if Section.PEERS in sections and self._peers_recently_refreshed():
            sections.discard(Section.PEERS)
            self._logger.debug("peers_refresh_throttled")
        if not sections:
            return None

        generation = self._generation
        self._partial_generation = generation
        try:
            return await self._execute(generation, self._gateway, sections, "partial")
        finally:
            if self._partial_generation == generation:
                self._partial_generation = None
            if generation == self._generation:
                self._rearm_pending()

    # -------------------------------------------------------------------------
    # Execution and Generation-checked Apply
    # -------------------------------------------------------------------------

    async def _execute(
        self,
        generation: int,
        gateway: RpcGateway,
        sections: Iterable[Section],
        kind: str,
    ) -> ApplyOutcome:
        batch = build_batch(sections)
        start = time.monotonic()
        try:
            outcomes = await gateway.batch(batch.calls)
            results = parse_batch(batch, outcomes)
        except Exception as e:  # Intentionally broad: refresh error boundary
            return self._record_failure(generation, kind, e)
        finally:
            self.observe_duration(f"{kind}_refresh", time.monotonic() - start)
        return self._apply(generation, kind, results)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._state is SessionState.POLLING

    def _discard(self, generation: int, kind: str) -> ApplyOutcome:
        self.inc_counter("results_discarded_stale")
        self._logger.debug(
            "result_discarded_stale", kind=kind, generation=generation, current=self._generation
        )
        return ApplyOutcome.DISCARDED_STALE

    def _apply(self, generation: int, kind: str, results: SectionResults) -> ApplyOutcome:
        if not self._is_current(generation):
            return self._discard(generation, kind)

        diff = apply_results(self._snapshot, results)
        applied = frozenset(results.values)
        self._pending -= applied
        if kind == "full" and applied:
            self._snapshot.loaded = True
        if Section.PEERS in applied:
            self._last_peers_refresh = self._clock.monotonic()
            if self._selected_peer is not None and self._selected_peer not in self._snapshot.peers:
                self._selected_peer = None

        error = results.first_error
        if error is not None:
            self._set_connectivity(Connectivity.DEGRADED, str(error))
            self._logger.warning(
                "sections_failed",
                kind=kind,
                generation=generation,
                sections=",".join(sorted(results.errors)),
                error=str(error),
            )
        else:
            self._set_connectivity(Connectivity.OK, None)

        self.inc_counter(f"refresh_applied_{kind}")
        self._logger.debug(
            "refresh_applied",
            kind=kind,
            generation=generation,
            sections=",".join(sorted(applied)),
            peers_added=len(diff.added) if diff else 0,
            peers_removed=len(diff.removed) if diff else 0,
        )
        if applied:
            self._notify_listeners(applied)
        return ApplyOutcome.APPLIED

    def _record_failure(self, generation: int, kind: str, error: Exception) -> ApplyOutcome:
        if not self._is_current(generation):
            return self._discard(generation, kind)
        self.inc_counter(f"refresh_failed_{kind}")
        self._set_connectivity(Connectivity.DEGRADED, str(error))
        self._logger.warning(
            "refresh_failed",
            kind=kind,
            generation=generation,
            error=str(error),
            error_type=type(error).__name__,
        )
        return ApplyOutcome.APPLIED

    def _set_connectivity(self, connectivity: Connectivity, error: str | None) -> None:
        previous = self._connectivity
        self._connectivity = connectivity
        self._last_error = error
        self.set_gauge("degraded", 1 if connectivity is Connectivity.DEGRADED else 0)
        if previous is not connectivity:
            self._logger.info(
                "connectivity_changed", previous=previous.value, current=connectivity.value
            )

    # -------------------------------------------------------------------------
    # Event Reader
    # -------------------------------------------------------------------------

    async def _read_events(self, generation: int) -> None:
        timing = self._config.timing
        while self._is_current(generation):
            try:
                wait = timing.long_poll_wait if self._buffer.connected else 0.0
                result = await self._buffer.read_since(self._cursor, wait)
                if not self._is_current(generation):
                    return
                self.handle_read(result)
                pause = timing.event_poll_fast if result.connected else timing.event_poll_slow
            except asyncio.CancelledError:
                raise
            except Exception as e:  # Intentionally broad: event reader error boundary
                self._logger.error("event_read_failed", error=str(e), error_type=type(e).__name__)
                pause = timing.event_poll_slow
            await self._clock.sleep(pause)

    def handle_read(self, result: ReadResult) -> set[Section]:
        """Consume one read result: track connectivity, resync, and hint sections.

        Returns:
            The sections hinted stale by the result's records.
        """
        self._set_event_connected(result.connected)
        if result.truncated:
            self._recent_events.clear()
            self.inc_counter("events_truncated")
            self._logger.warning(
                "events_truncated",
                previous_cursor=self._cursor,
                cursor=result.cursor,
                retained=len(result.messages),
            )
        self._cursor = result.cursor
        self.set_gauge("event_buffer_size", len(self._buffer))

        if not result.messages:
            return set()
        self._recent_events.extend(result.messages)
        self._events_seen += len(result.messages)
        self.inc_counter("events_received", len(result.messages))

        stale = sections_for_topics(record.topic for record in result.messages)
        if stale:
            self.hint(stale)
        return stale

    def _set_event_connected(self, connected: bool) -> None:
        if connected == self._event_connected:
            return
        self._event_connected = connected
        self.set_gauge("event_connected", 1 if connected else 0)
        self._logger.info(
            "event_source_connected" if connected else "event_source_disconnected",
            address=self._buffer.address,
            next_full_refresh_s=self.cycle_interval(),
        )
        self.wake()

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Dashboard:
        await super().__aenter__()
        if self._config.api.enabled:
            from .api import build_app, serve_api  # noqa: PLC0415

            self._api_task = asyncio.create_task(serve_api(build_app(self), self._config.api))
            self._logger.info(
                "http_server_started", host=self._config.api.host, port=self._config.api.port
            )
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.stop_session()
        if self._api_task is not None:
            self._api_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._api_task
            self._api_task = None
            self._logger.info("http_server_stopped")
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await super().__aexit__(_exc_type, _exc_val, _exc_tb)
