"""Unit tests for utils.http module.

Tests:
- read_bounded_body() accumulation across chunks
- Size enforcement, including the exact-limit boundary
- read_bounded_json() parsing and error propagation
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from nodewatch.utils.http import read_bounded_body, read_bounded_json


def _mock_response(*chunks: bytes) -> MagicMock:
    """Build a mock aiohttp.ClientResponse that yields chunks then EOF."""
    resp = MagicMock()
    content = MagicMock()
    content.read = AsyncMock(side_effect=[*chunks, b""])
    resp.content = content
    return resp


class TestReadBoundedBody:
    """Body accumulation with a size cap."""

    async def test_single_chunk(self) -> None:
        assert await read_bounded_body(_mock_response(b"hello"), 100) == b"hello"

    async def test_multiple_chunks(self) -> None:
        assert await read_bounded_body(_mock_response(b"ab", b"cd", b"e"), 100) == b"abcde"

    async def test_exact_limit_allowed(self) -> None:
        assert await read_bounded_body(_mock_response(b"x" * 10), 10) == b"x" * 10

    async def test_oversized_rejected(self) -> None:
        with pytest.raises(ValueError, match="too large"):
            await read_bounded_body(_mock_response(b"x" * 6, b"x" * 6), 10)

    async def test_read_size_shrinks(self) -> None:
        resp = _mock_response(b"abc", b"de")
        await read_bounded_body(resp, 10)
        sizes = [c.args[0] for c in resp.content.read.await_args_list]
        assert sizes == [11, 8, 6]

    async def test_empty_body(self) -> None:
        assert await read_bounded_body(_mock_response(), 10) == b""


class TestReadBoundedJson:
    """JSON parsing on top of the bounded reader."""

    async def test_parses(self) -> None:
        body = json.dumps({"result": 1, "error": None, "id": 1}).encode()
        assert await read_bounded_json(_mock_response(body), 1000) == {
            "result": 1,
            "error": None,
            "id": 1,
        }

    async def test_invalid_json(self) -> None:
        with pytest.raises(json.JSONDecodeError):
            await read_bounded_json(_mock_response(b"<html>"), 1000)

    async def test_oversized(self) -> None:
        with pytest.raises(ValueError, match="too large"):
            await read_bounded_json(_mock_response(b"[" + b"1," * 100 + b"1]"), 50)
