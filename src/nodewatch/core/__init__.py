"""Core layer providing the infrastructure of the dashboard engine.

Depends on ``nodewatch.models`` and ``nodewatch.utils`` and is depended
upon by ``nodewatch.services``.

Attributes:
    RpcGateway: JSON-RPC client over aiohttp with batch support, typed
        errors, and an in-flight limit.
        See [RpcGateway][nodewatch.core.rpc.RpcGateway].
    RuntimeConfig: Immutable per-session connection settings.
        See [RuntimeConfig][nodewatch.core.runtime.RuntimeConfig].
    EventBuffer: Bounded cursor-indexed notification store with long-poll
        reads. See [EventBuffer][nodewatch.core.event_buffer.EventBuffer].
    ZmqSubscriber: Background ZMQ SUB socket feeding the buffer.
        See [ZmqSubscriber][nodewatch.core.subscriber.ZmqSubscriber].
    DebounceTimer: Three-state timer on an injectable
        [Clock][nodewatch.core.clock.Clock].
    BaseService: Abstract generic base class with lifecycle management,
        adaptive cycling, factory methods, and Prometheus metrics.
    Logger: Structured logger supporting key=value and JSON output modes.
    MetricsServer: Prometheus ``/metrics`` HTTP endpoint.
    YAML: Safe YAML loading. See [load_yaml()][nodewatch.core.yaml.load_yaml].

Examples:
    ```python
    from nodewatch.core import RpcGateway, RuntimeConfig

    async with RpcGateway(RuntimeConfig()) as rpc:
        print(await rpc.call("getblockcount"))
    ```
"""

from .base_service import BaseService, BaseServiceConfig, ConfigT
from .clock import Clock, DebounceTimer, SystemClock, TimerState
from .event_buffer import EventBuffer
from .exceptions import (
    ConfigurationError,
    EventSourceError,
    NodeWatchError,
    RpcBusyError,
    RpcError,
    RpcInvalidResponseError,
    RpcRemoteError,
    RpcTimeoutError,
    RpcTransportError,
    UnsafeHostError,
)
from .logger import Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    OPERATION_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsServer,
    start_metrics_server,
)
from .rpc import RpcCall, RpcGateway, RpcOutcome
from .runtime import RuntimeConfig, ensure_safe_host
from .subscriber import ZmqSubscriber
from .yaml import load_yaml


__all__ = [
    "OPERATION_DURATION_SECONDS",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "BaseService",
    "BaseServiceConfig",
    "Clock",
    "ConfigT",
    "ConfigurationError",
    "DebounceTimer",
    "EventBuffer",
    "EventSourceError",
    "Logger",
    "MetricsConfig",
    "MetricsServer",
    "NodeWatchError",
    "RpcBusyError",
    "RpcCall",
    "RpcError",
    "RpcGateway",
    "RpcInvalidResponseError",
    "RpcOutcome",
    "RpcRemoteError",
    "RpcTimeoutError",
    "RpcTransportError",
    "RuntimeConfig",
    "StructuredFormatter",
    "SystemClock",
    "TimerState",
    "UnsafeHostError",
    "ZmqSubscriber",
    "ensure_safe_host",
    "format_kv_pairs",
    "load_yaml",
    "start_metrics_server",
]
