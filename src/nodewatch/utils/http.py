"""Bounded HTTP body reading.

``getpeerinfo`` on a busy node, or a misconfigured endpoint that answers
with something other than JSON-RPC, can return very large bodies. The RPC
gateway reads responses through
[read_bounded_json][nodewatch.utils.http.read_bounded_json] so memory use
per call stays capped.

Note:
    This module sits in the ``utils`` layer and depends only on stdlib and
    ``aiohttp``. It never parses JSON-RPC semantics; that belongs to
    [RpcGateway][nodewatch.core.rpc.RpcGateway].
"""

from __future__ import annotations

import json
from typing import Any

import aiohttp


async def read_bounded_body(response: aiohttp.ClientResponse, max_size: int) -> bytes:
    """Read an entire response body with size enforcement.

    Accumulates chunks until EOF or until ``max_size`` is exceeded, which
    also handles chunked transfer-encoding where a single read returns
    fewer bytes than requested.

    Args:
        response: An aiohttp response whose body has not yet been consumed.
        max_size: Maximum allowed body size in bytes.

    Raises:
        ValueError: If the body exceeds ``max_size``.
    """
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await response.content.read(max_size + 1 - total)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise ValueError(f"Response body too large: >{max_size} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_bounded_json(response: aiohttp.ClientResponse, max_size: int) -> Any:
    """Read and parse a JSON body with size enforcement.

    Raises:
        ValueError: If the body exceeds ``max_size``.
        json.JSONDecodeError: If the body is not valid JSON.
    """
    body = await read_bounded_body(response, max_size)
    return json.loads(body)
