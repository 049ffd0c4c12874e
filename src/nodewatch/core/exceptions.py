"""nodewatch exception hierarchy.

Typed exceptions let the orchestrator tell apart errors worth retrying on
the next cycle (transport, timeout) from errors it should only surface
(remote rejections, unsafe configuration), while ``CancelledError`` keeps
propagating untouched.

Exception hierarchy:

```text
NodeWatchError (base -- never raised directly)
├── ConfigurationError           -- bad YAML, invalid config values
│   └── UnsafeHostError          -- RPC host outside the private allow-list
├── RpcError                     -- any failure of an RPC call
│   ├── RpcTransportError        -- connection refused, non-2xx, reset
│   │   ├── RpcTimeoutError      -- request exceeded the configured timeout
│   │   └── RpcBusyError         -- too many calls already in flight
│   ├── RpcInvalidResponseError  -- body is not a JSON-RPC response
│   └── RpcRemoteError           -- node returned a JSON-RPC error object
└── EventSourceError             -- ZMQ subscriber socket failure
```

See Also:
    [RpcGateway][nodewatch.core.rpc.RpcGateway]: Translates aiohttp and
        JSON failures into the ``RpcError`` branch.
    [Dashboard][nodewatch.services.dashboard.Dashboard]: Catches
        ``RpcError`` at the refresh boundary and records degraded
        connectivity.
"""

from __future__ import annotations

from typing import Any


class NodeWatchError(Exception):
    """Base exception for all nodewatch errors.

    Never raised directly -- always use a specific subclass.
    """


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(NodeWatchError):
    """Invalid or missing configuration (YAML, env vars, CLI flags).

    See Also:
        [load_yaml()][nodewatch.core.yaml.load_yaml]: YAML loading function
            that raises this for unreadable files.
    """


class UnsafeHostError(ConfigurationError):
    """The RPC URL targets a public host and the override is not set.

    Always user-actionable: fix the URL or set ``DANGER_INSECURE_RPC=1``.

    Attributes:
        url: The rejected URL.
        host: Extracted host, or ``None`` if it could not be parsed.
        reason: Human-readable rejection reason.
    """

    def __init__(self, url: str, host: str | None, reason: str) -> None:
        super().__init__(reason)
        self.url = url
        self.host = host
        self.reason = reason


# ---------------------------------------------------------------------------
# RPC
# ---------------------------------------------------------------------------


class RpcError(NodeWatchError):
    """Base for all RPC call failures."""


class RpcTransportError(RpcError):
    """Network-level failure or non-2xx status without a JSON-RPC body.

    Retried by the orchestrator on its next scheduled cycle.
    """


class RpcTimeoutError(RpcTransportError):
    """The request did not complete within the configured timeout."""


class RpcBusyError(RpcTransportError):
    """The gateway already has ``max_in_flight`` calls running."""


class RpcInvalidResponseError(RpcError):
    """The response body is not valid JSON-RPC (bad JSON, missing fields)."""


class RpcRemoteError(RpcError):
    """The node understood the request and returned a JSON-RPC error object.

    Not retried automatically: an identical request would be rejected again.

    Attributes:
        code: JSON-RPC error code (e.g. ``-32601`` method not found).
        message: Error message reported by the node.
        data: Optional extra error payload.
    """

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"rpc error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventSourceError(NodeWatchError):
    """The ZMQ subscriber could not connect or its socket failed.

    Never fatal: the orchestrator falls back to the short polling interval.
    """
