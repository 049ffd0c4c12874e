"""Background ZMQ subscriber feeding the event buffer.

Bitcoin Core publishes notifications on ``-zmqpub*`` endpoints as
three-frame messages ``[topic, body, sequence]``.
[ZmqSubscriber][nodewatch.core.subscriber.ZmqSubscriber] connects a SUB
socket (``zmq.asyncio``), subscribes to the configured topics, and hands
every parsed message to its sink, normally an
[EventBuffer][nodewatch.core.event_buffer.EventBuffer].

The sink is marked connected once the socket is connected and
disconnected whenever the receive loop ends, for any reason, so readers
blocked in a long poll wake up promptly.

The receive high-water mark comes from ``ZMQ_SOCKET_RCVHWM`` (default
100000, clamped to 1000..1000000): a mempool flood can publish thousands
of ``hashtx`` messages per second.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
from collections.abc import Iterable, Mapping
from typing import ClassVar, Protocol

import zmq
import zmq.asyncio

from nodewatch.models.constants import Topic
from nodewatch.models.event import EventNotification, EventRecord

from .exceptions import EventSourceError
from .logger import Logger


RCVHWM_ENV = "ZMQ_SOCKET_RCVHWM"


class EventSink(Protocol):
    """Receiver of subscriber output."""

    def publish(self, notification: EventNotification) -> EventRecord: ...

    def mark_connected(self, address: str) -> None: ...

    def mark_disconnected(self) -> None: ...


def receive_hwm(environ: Mapping[str, str] | None = None) -> int:
    """Receive high-water mark from the environment, clamped."""
    env = os.environ if environ is None else environ
    try:
        value = int(env.get(RCVHWM_ENV, ZmqSubscriber.DEFAULT_RCVHWM))
    except ValueError:
        value = ZmqSubscriber.DEFAULT_RCVHWM
    low, high = ZmqSubscriber.RCVHWM_BOUNDS
    return max(low, min(high, value))


class ZmqSubscriber:
    """Subscribe to a node's ZMQ publisher and forward messages to a sink.

    Args:
        address: ZMQ endpoint, e.g. ``tcp://127.0.0.1:28332``.
        sink: Receiver of notifications and connection state.
        topics: Topics to subscribe to.
        context: Shared ``zmq.asyncio.Context``; a private one is created
            and destroyed with the subscriber when omitted.

    Examples:
        ```python
        subscriber = ZmqSubscriber("tcp://127.0.0.1:28332", buffer)
        subscriber.start()
        ...
        await subscriber.stop()
        ```
    """

    DEFAULT_TOPICS: ClassVar[tuple[Topic, ...]] = (Topic.HASHBLOCK, Topic.HASHTX)
    RECEIVE_TIMEOUT_MS: ClassVar[int] = 500
    DEFAULT_RCVHWM: ClassVar[int] = 100_000
    RCVHWM_BOUNDS: ClassVar[tuple[int, int]] = (1_000, 1_000_000)

    def __init__(
        self,
        address: str,
        sink: EventSink,
        *,
        topics: Iterable[str] = DEFAULT_TOPICS,
        context: zmq.asyncio.Context | None = None,
    ) -> None:
        self._address = address
        self._sink = sink
        self._topics = tuple(str(t) for t in topics)
        self._context = context
        self._task: asyncio.Task[None] | None = None
        self._stopping = False
        self._received = 0
        self._logger = Logger("subscriber")

    @property
    def address(self) -> str:
        return self._address

    @property
    def received(self) -> int:
        """Messages forwarded to the sink so far."""
        return self._received

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Run the receive loop in a background task."""
        if self._task is None or self._task.done():
            self._stopping = False
            self._task = asyncio.create_task(self._run_supervised())
        return self._task

    async def stop(self) -> None:
        """Stop the receive loop and wait for the socket to close. Idempotent."""
        self._stopping = True
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run_supervised(self) -> None:
        # Failures are already logged by run(); the buffer reports disconnected.
        with contextlib.suppress(EventSourceError):
            await self.run()

    async def run(self) -> None:
        """Connect and forward messages until stopped.

        Raises:
            EventSourceError: If the endpoint is invalid or the socket fails.
        """
        context = self._context or zmq.asyncio.Context()
        socket = context.socket(zmq.SUB)
        try:
            try:
                socket.setsockopt(zmq.RCVHWM, receive_hwm())
                for topic in self._topics:
                    socket.setsockopt(zmq.SUBSCRIBE, topic.encode())
                socket.connect(self._address)
            except zmq.ZMQError as e:
                self._logger.warning(
                    "subscriber_connect_failed", address=self._address, error=str(e)
                )
                raise EventSourceError(f"cannot connect to {self._address}: {e}") from e

            self._sink.mark_connected(self._address)
            self._logger.info(
                "subscriber_connected", address=self._address, topics=",".join(self._topics)
            )

            while not self._stopping:
                if not await socket.poll(timeout=self.RECEIVE_TIMEOUT_MS):
                    continue
                frames = await socket.recv_multipart()
                notification = EventNotification.from_frames(frames, int(time.time()))
                if notification is None:
                    self._logger.debug("message_skipped", frames=len(frames))
                    continue
                self._sink.publish(notification)
                self._received += 1
        except zmq.ZMQError as e:
            self._logger.warning("subscriber_socket_failed", address=self._address, error=str(e))
            raise EventSourceError(f"socket failure on {self._address}: {e}") from e
        finally:
            socket.close(linger=0)
            if self._context is None:
                context.destroy(linger=0)
            self._sink.mark_disconnected()
            self._logger.info(
                "subscriber_disconnected", address=self._address, received=self._received
            )
