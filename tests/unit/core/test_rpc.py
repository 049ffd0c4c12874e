"""
Unit tests for core.rpc module.

Tests:
- RpcCall / RpcOutcome value types
- RpcGateway.call(): envelope, auth, wallet endpoint, result unwrapping
- Failure mapping (timeout, transport, non-2xx, invalid JSON, oversized,
  remote error, missing result)
- RpcGateway.batch(): id matching, positional fallback, per-call errors,
  whole-batch failures
- In-flight limit (RpcBusyError) and wait_idle()
- Host validation on construction and session ownership
"""

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from nodewatch.core.exceptions import (
    RpcBusyError,
    RpcInvalidResponseError,
    RpcRemoteError,
    RpcTimeoutError,
    RpcTransportError,
    UnsafeHostError,
)
from nodewatch.core.rpc import RpcCall, RpcGateway, RpcOutcome
from nodewatch.core.runtime import RuntimeConfig
from nodewatch.utils.host import HostSafetyValidator


def _mock_response(body: Any, status: int = 200, reason: str = "OK") -> MagicMock:
    """Build a mock aiohttp response whose content yields ``body`` then EOF."""
    raw = body if isinstance(body, bytes) else json.dumps(body).encode()
    resp = MagicMock()
    resp.status = status
    resp.reason = reason
    resp.content = MagicMock()
    resp.content.read = AsyncMock(side_effect=[raw, b""])
    return resp


def _mock_session(*responses: MagicMock) -> MagicMock:
    """Build a mock ClientSession whose post() yields ``responses`` in order."""
    session = MagicMock()
    contexts = []
    for resp in responses:
        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(return_value=resp)
        ctx.__aexit__ = AsyncMock(return_value=None)
        contexts.append(ctx)
    session.post = MagicMock(side_effect=contexts)
    session.close = AsyncMock()
    return session


def _gateway(session: MagicMock, **overrides: Any) -> RpcGateway:
    config = RuntimeConfig(**overrides)
    return RpcGateway(config, validator=HostSafetyValidator(), session=session)


# ============================================================================
# Value Type Tests
# ============================================================================


class TestValueTypes:
    """RpcCall and RpcOutcome."""

    def test_call_params_tuple(self) -> None:
        call = RpcCall("getblockhash", [100])  # type: ignore[arg-type]
        assert call.params == (100,)

    def test_call_rejects_empty_method(self) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            RpcCall("")

    def test_outcome_unwrap(self) -> None:
        assert RpcOutcome(result=5).unwrap() == 5
        assert RpcOutcome(result=5).ok is True
        failed = RpcOutcome(error=RpcRemoteError(-1, "boom"))
        assert failed.ok is False
        with pytest.raises(RpcRemoteError):
            failed.unwrap()


# ============================================================================
# Single Call Tests
# ============================================================================


class TestCall:
    """RpcGateway.call()."""

    async def test_returns_result(self) -> None:
        session = _mock_session(_mock_response({"result": 850_000, "error": None, "id": 1}))
        gateway = _gateway(session)

        assert await gateway.call("getblockcount") == 850_000

        args, kwargs = session.post.call_args
        assert args == ("http://127.0.0.1:8332",)
        assert kwargs["json"] == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getblockcount",
            "params": [],
        }
        assert kwargs["auth"] is None
        assert kwargs["timeout"].total == 30.0

    async def test_params_and_auth(self) -> None:
        session = _mock_session(_mock_response({"result": "00ab", "id": 1}))
        gateway = _gateway(session, user="rpc", password="pw")

        await gateway.call("getblockhash", [7])

        kwargs = session.post.call_args.kwargs
        assert kwargs["json"]["params"] == [7]
        assert kwargs["auth"] == aiohttp.BasicAuth("rpc", "pw")

    async def test_wallet_endpoint(self) -> None:
        session = _mock_session(_mock_response({"result": {}, "id": 1}))
        gateway = _gateway(session, wallet="hot")
        await gateway.call("getwalletinfo")
        assert session.post.call_args.args[0] == "http://127.0.0.1:8332/wallet/hot"

    async def test_null_result_is_valid(self) -> None:
        session = _mock_session(_mock_response({"result": None, "error": None, "id": 1}))
        assert await _gateway(session).call("ping") is None

    async def test_remote_error(self) -> None:
        body = {"result": None, "error": {"code": -32601, "message": "Method not found"}, "id": 1}
        session = _mock_session(_mock_response(body, status=500, reason="Internal Server Error"))

        with pytest.raises(RpcRemoteError) as exc_info:
            await _gateway(session).call("nosuchmethod")

        assert exc_info.value.code == -32601
        assert exc_info.value.message == "Method not found"

    async def test_remote_error_defaults(self) -> None:
        session = _mock_session(_mock_response({"error": {"code": "x"}, "id": 1}))
        with pytest.raises(RpcRemoteError) as exc_info:
            await _gateway(session).call("getblockcount")
        assert exc_info.value.code == -1
        assert exc_info.value.message == "unknown rpc error"

    async def test_missing_result(self) -> None:
        session = _mock_session(_mock_response({"id": 1}))
        with pytest.raises(RpcInvalidResponseError, match="missing result"):
            await _gateway(session).call("getblockcount")

    async def test_non_object_body(self) -> None:
        session = _mock_session(_mock_response([1, 2]))
        with pytest.raises(RpcInvalidResponseError, match="JSON object"):
            await _gateway(session).call("getblockcount")

    async def test_invalid_json_ok_status(self) -> None:
        session = _mock_session(_mock_response(b"<html>hello</html>"))
        with pytest.raises(RpcInvalidResponseError, match="invalid JSON"):
            await _gateway(session).call("getblockcount")

    async def test_http_error_without_rpc_body(self) -> None:
        session = _mock_session(_mock_response(b"", status=401, reason="Unauthorized"))
        with pytest.raises(RpcTransportError, match="HTTP 401 Unauthorized"):
            await _gateway(session).call("getblockcount")

    async def test_http_error_with_foreign_json(self) -> None:
        session = _mock_session(_mock_response({"detail": "nope"}, status=404, reason="Not Found"))
        with pytest.raises(RpcTransportError, match="HTTP 404"):
            await _gateway(session).call("getblockcount")

    async def test_oversized_body(self) -> None:
        session = _mock_session(_mock_response(b"[" + b"1," * 2000 + b"1]"))
        gateway = _gateway(session, max_response_size=1024)
        with pytest.raises(RpcInvalidResponseError, match="too large"):
            await gateway.call("getpeerinfo")

    async def test_timeout(self) -> None:
        session = MagicMock()
        session.post = MagicMock(side_effect=TimeoutError())
        with pytest.raises(RpcTimeoutError, match="timed out"):
            await _gateway(session, timeout=2).call("getblockcount")

    async def test_connection_error(self) -> None:
        session = MagicMock()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(RpcTransportError, match="refused"):
            await _gateway(session).call("getblockcount")

    async def test_os_error(self) -> None:
        session = MagicMock()
        session.post = MagicMock(side_effect=ConnectionResetError("reset"))
        gateway = _gateway(session)
        with pytest.raises(RpcTransportError):
            await gateway.call("getblockcount")
        assert gateway.in_flight == 0


# ============================================================================
# Batch Tests
# ============================================================================


class TestBatch:
    """RpcGateway.batch()."""

    async def test_empty_batch(self) -> None:
        session = _mock_session()
        assert await _gateway(session).batch([]) == []
        session.post.assert_not_called()

    async def test_matches_by_id(self) -> None:
        body = [
            {"result": "second", "error": None, "id": 2},
            {"result": "first", "error": None, "id": 1},
        ]
        session = _mock_session(_mock_response(body))
        outcomes = await _gateway(session).batch([RpcCall("a"), RpcCall("b")])

        assert [o.result for o in outcomes] == ["first", "second"]
        payload = session.post.call_args.kwargs["json"]
        assert [item["id"] for item in payload] == [1, 2]
        assert [item["method"] for item in payload] == ["a", "b"]

    async def test_positional_fallback(self) -> None:
        body = [{"result": "x", "id": None}, {"result": "y", "id": None}]
        session = _mock_session(_mock_response(body))
        outcomes = await _gateway(session).batch([RpcCall("a"), RpcCall("b")])
        assert [o.result for o in outcomes] == ["x", "y"]

    async def test_per_call_error(self) -> None:
        body = [
            {"result": {"blocks": 1}, "error": None, "id": 1},
            {"result": None, "error": {"code": -1, "message": "uptime unavailable"}, "id": 2},
        ]
        session = _mock_session(_mock_response(body))
        outcomes = await _gateway(session).batch([RpcCall("getblockchaininfo"), RpcCall("uptime")])

        assert outcomes[0].ok
        assert outcomes[0].result == {"blocks": 1}
        assert isinstance(outcomes[1].error, RpcRemoteError)
        assert outcomes[1].error.message == "uptime unavailable"

    async def test_missing_item(self) -> None:
        body = [{"result": 1, "id": 1}]
        session = _mock_session(_mock_response(body))
        outcomes = await _gateway(session).batch([RpcCall("a"), RpcCall("b")])
        assert outcomes[0].result == 1
        assert isinstance(outcomes[1].error, RpcInvalidResponseError)
        assert "missing response for b" in str(outcomes[1].error)

    async def test_whole_batch_error_object(self) -> None:
        body = {"result": None, "error": {"code": -32700, "message": "Parse error"}, "id": None}
        session = _mock_session(_mock_response(body, status=500))
        with pytest.raises(RpcRemoteError, match="Parse error"):
            await _gateway(session).batch([RpcCall("a")])

    async def test_non_list_body(self) -> None:
        session = _mock_session(_mock_response({"result": 1, "id": 1}))
        with pytest.raises(RpcInvalidResponseError, match="JSON array"):
            await _gateway(session).batch([RpcCall("a")])

    async def test_transport_failure_raises(self) -> None:
        session = MagicMock()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("down"))
        with pytest.raises(RpcTransportError):
            await _gateway(session).batch([RpcCall("a"), RpcCall("b")])


# ============================================================================
# Concurrency and Lifecycle Tests
# ============================================================================


class TestInFlight:
    """In-flight limit and idle tracking."""

    async def test_busy_when_saturated(self) -> None:
        gate = asyncio.Event()
        resp = _mock_response({"result": 1, "id": 1})

        async def slow_enter() -> MagicMock:
            await gate.wait()
            return resp

        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(side_effect=slow_enter)
        ctx.__aexit__ = AsyncMock(return_value=None)
        session = MagicMock()
        session.post = MagicMock(return_value=ctx)
        gateway = _gateway(session, max_in_flight=1)

        first = asyncio.create_task(gateway.call("getblockcount"))
        await asyncio.sleep(0)
        assert gateway.in_flight == 1

        with pytest.raises(RpcBusyError, match="saturated"):
            await gateway.call("getblockcount")

        idle = asyncio.create_task(gateway.wait_idle())
        await asyncio.sleep(0)
        assert not idle.done()

        gate.set()
        assert await first == 1
        await asyncio.wait_for(idle, timeout=1)
        assert gateway.in_flight == 0


class TestLifecycle:
    """Construction and session ownership."""

    def test_unsafe_host_rejected(self) -> None:
        with pytest.raises(UnsafeHostError):
            RpcGateway(RuntimeConfig(url="http://1.1.1.1:8332"), validator=HostSafetyValidator())

    def test_override_allows_public(self) -> None:
        gateway = RpcGateway(
            RuntimeConfig(url="http://1.1.1.1:8332"),
            validator=HostSafetyValidator(allow_insecure=True),
        )
        assert gateway.config.url == "http://1.1.1.1:8332"

    async def test_injected_session_not_closed(self) -> None:
        session = _mock_session()
        async with _gateway(session):
            pass
        session.close.assert_not_awaited()

    async def test_owned_session_closed(self) -> None:
        owned = MagicMock()
        owned.close = AsyncMock()
        with patch("nodewatch.core.rpc.aiohttp.ClientSession", return_value=owned):
            gateway = RpcGateway(RuntimeConfig(), validator=HostSafetyValidator())
            assert gateway._get_session() is owned
            await gateway.close()
            await gateway.close()
        owned.close.assert_awaited_once()
