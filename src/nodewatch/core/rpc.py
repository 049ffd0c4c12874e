"""JSON-RPC gateway for Bitcoin Core's HTTP interface.

[RpcGateway][nodewatch.core.rpc.RpcGateway] posts JSON-RPC 2.0 requests
over a shared ``aiohttp.ClientSession`` with HTTP Basic auth. Single calls
either return the ``result`` value or raise; batches return one
[RpcOutcome][nodewatch.core.rpc.RpcOutcome] per call, in request order, so
one failing method never hides the others.

Failure mapping:

- ``TimeoutError`` -> [RpcTimeoutError][nodewatch.core.exceptions.RpcTimeoutError]
- ``aiohttp.ClientError`` / ``OSError`` / non-2xx without a JSON-RPC body
  -> [RpcTransportError][nodewatch.core.exceptions.RpcTransportError]
- JSON-RPC ``error`` object -> [RpcRemoteError][nodewatch.core.exceptions.RpcRemoteError]
- malformed body -> [RpcInvalidResponseError][nodewatch.core.exceptions.RpcInvalidResponseError]

Bitcoin Core answers failed single calls with HTTP 500 and a JSON-RPC error
body, so the status code alone is not treated as a failure when the body
is a JSON-RPC response.

No retries happen here: the orchestrator re-issues work on its next cycle.

See Also:
    [RuntimeConfig][nodewatch.core.runtime.RuntimeConfig]: URL, credentials,
        wallet, and transport limits.
    [Dashboard][nodewatch.services.dashboard.Dashboard]: The only caller.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import aiohttp

from nodewatch.utils.http import read_bounded_json

from .exceptions import (
    RpcBusyError,
    RpcError,
    RpcInvalidResponseError,
    RpcRemoteError,
    RpcTimeoutError,
    RpcTransportError,
)
from .logger import Logger
from .runtime import RuntimeConfig, ensure_safe_host


if TYPE_CHECKING:
    from types import TracebackType

    from nodewatch.utils.host import HostSafetyValidator


_HTTP_OK_MAX = 299


@dataclass(frozen=True, slots=True)
class RpcCall:
    """One JSON-RPC method invocation with positional parameters."""

    method: str
    params: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if not self.method:
            raise ValueError("RPC method must not be empty")
        object.__setattr__(self, "params", tuple(self.params))


@dataclass(frozen=True, slots=True)
class RpcOutcome:
    """Per-call result inside a batch: either ``result`` or ``error`` is meaningful."""

    result: Any = None
    error: RpcError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the result or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.result


class RpcGateway:
    """Execute single and batched JSON-RPC calls against one node.

    The gateway validates the configured host on construction and refuses
    unsafe targets. It owns its ``aiohttp.ClientSession`` unless one is
    injected, and limits concurrent requests to ``max_in_flight``.

    Examples:
        ```python
        async with RpcGateway(RuntimeConfig(user="rpc", password="pw")) as rpc:
            info = await rpc.call("getblockchaininfo")
            outcomes = await rpc.batch([RpcCall("getmempoolinfo"), RpcCall("uptime")])
        ```

    Raises:
        UnsafeHostError: On construction, if the URL fails host validation.
    """

    def __init__(
        self,
        config: RuntimeConfig,
        *,
        validator: HostSafetyValidator | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = ensure_safe_host(config, validator)
        self._session = session
        self._owns_session = session is None
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._logger = Logger("rpc")

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def in_flight(self) -> int:
        """Number of HTTP requests currently awaiting a response."""
        return self._in_flight

    async def __aenter__(self) -> RpcGateway:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the owned session. Idempotent."""
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def wait_idle(self) -> None:
        """Wait until no request is in flight."""
        await self._idle.wait()

    # -------------------------------------------------------------------------
    # Calls
    # -------------------------------------------------------------------------

    async def call(self, method: str, params: Sequence[Any] = ()) -> Any:
        """Invoke one method and return its ``result``.

        Raises:
            RpcError: Any subclass, see the module docstring.
        """
        body = await self._post(self._envelope(RpcCall(method, tuple(params)), 1))
        if not isinstance(body, dict):
            raise RpcInvalidResponseError("expected a JSON object response")
        return self._unwrap(body)

    async def batch(self, calls: Sequence[RpcCall]) -> list[RpcOutcome]:
        """Invoke several methods in one HTTP request.

        Responses are matched to calls by id, falling back to position
        when the node omits ids.

        Returns:
            One outcome per call, in request order.

        Raises:
            RpcError: When the batch as a whole fails (transport, timeout,
                malformed body, or a single error object for the batch).
        """
        if not calls:
            return []

        start = time.monotonic()
        body = await self._post([self._envelope(c, i) for i, c in enumerate(calls, 1)])
        if isinstance(body, dict) and body.get("error") is not None:
            raise self._remote_error(body["error"])
        if not isinstance(body, list):
            raise RpcInvalidResponseError("expected a JSON array for batch response")

        by_id = {
            item["id"]: item
            for item in body
            if isinstance(item, dict) and isinstance(item.get("id"), int)
        }
        outcomes: list[RpcOutcome] = []
        for index, call in enumerate(calls, 1):
            item = by_id.get(index)
            if item is None and len(body) == len(calls) and isinstance(body[index - 1], dict):
                item = body[index - 1]
            if item is None:
                error = RpcInvalidResponseError(f"missing response for {call.method}")
                outcomes.append(RpcOutcome(error=error))
                continue
            try:
                outcomes.append(RpcOutcome(result=self._unwrap(item)))
            except RpcError as e:
                outcomes.append(RpcOutcome(error=e))

        self._logger.debug(
            "batch_completed",
            calls=len(calls),
            failed=sum(1 for o in outcomes if not o.ok),
            duration_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return outcomes

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    @staticmethod
    def _envelope(call: RpcCall, request_id: int) -> dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": call.method,
            "params": list(call.params),
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    def _auth(self) -> aiohttp.BasicAuth | None:
        password = self._config.password.get_secret_value()
        if not self._config.user and not password:
            return None
        return aiohttp.BasicAuth(self._config.user, password)

    async def _post(self, payload: Any) -> Any:
        if self._in_flight >= self._config.max_in_flight:
            raise RpcBusyError("rpc worker pool saturated; try again")

        self._in_flight += 1
        self._idle.clear()
        url = self._config.endpoint_url
        timeout = aiohttp.ClientTimeout(total=self._config.timeout)
        try:
            async with self._get_session().post(
                url, json=payload, auth=self._auth(), timeout=timeout
            ) as resp:
                return await self._read_body(resp)
        except TimeoutError as e:
            raise RpcTimeoutError(
                f"request to {url} timed out after {self._config.timeout}s"
            ) from e
        except (aiohttp.ClientError, OSError) as e:
            raise RpcTransportError(f"{type(e).__name__}: {e}") from e
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._idle.set()

    async def _read_body(self, resp: aiohttp.ClientResponse) -> Any:
        failed_status = resp.status > _HTTP_OK_MAX
        try:
            body = await read_bounded_json(resp, self._config.max_response_size)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            if failed_status:
                raise RpcTransportError(f"HTTP {resp.status} {resp.reason or ''}".strip()) from e
            raise RpcInvalidResponseError(f"invalid JSON in response: {e}") from e
        except ValueError as e:
            raise RpcInvalidResponseError(str(e)) from e

        if failed_status and not self._is_rpc_body(body):
            raise RpcTransportError(f"HTTP {resp.status} {resp.reason or ''}".strip())
        return body

    @staticmethod
    def _is_rpc_body(body: Any) -> bool:
        if isinstance(body, list):
            return True
        return isinstance(body, dict) and ("error" in body or "result" in body)

    # -------------------------------------------------------------------------
    # Response Decoding
    # -------------------------------------------------------------------------

    @classmethod
    def _unwrap(cls, item: dict[str, Any]) -> Any:
        error = item.get("error")
        if error is not None:
            raise cls._remote_error(error)
        if "result" not in item:
            raise RpcInvalidResponseError("missing result field")
        return item["result"]

    @staticmethod
    def _remote_error(error: Any) -> RpcRemoteError:
        if not isinstance(error, dict):
            return RpcRemoteError(-1, str(error))
        code = error.get("code")
        message = error.get("message")
        return RpcRemoteError(
            code if isinstance(code, int) else -1,
            message if isinstance(message, str) and message else "unknown rpc error",
            error.get("data"),
        )
