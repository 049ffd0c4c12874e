"""Read-only HTTP API over a running [Dashboard][nodewatch.services.dashboard.Dashboard].

Endpoints:

| Path | Returns |
|------|---------|
| ``GET /health`` | Liveness plus session state and connectivity |
| ``GET /api/v1/snapshot`` | Section summaries and orchestrator status |
| ``GET /api/v1/peers/{peer_id}`` | Full ``getpeerinfo`` entry of one peer |
| ``GET /api/v1/events?since=&wait_ms=`` | Long-poll read of the event buffer |
| ``GET /api/v1/events/recent`` | Records most recently seen by the reader |

The server runs as a background ``asyncio.Task`` owned by the dashboard;
see [serve_api()][nodewatch.services.dashboard.api.serve_api].
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import uvicorn
from fastapi import FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse

from nodewatch.core.logger import Logger


if TYPE_CHECKING:
    from .configs import ApiConfig
    from .service import Dashboard

_HTTP_ERROR_THRESHOLD = 400


def build_app(dashboard: Dashboard) -> FastAPI:
    """Construct the FastAPI application serving ``dashboard``."""
    app = FastAPI(title="nodewatch")
    logger = Logger("api")
    max_wait_ms = dashboard.config.api.max_wait_ms

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Response:
        start = time.monotonic()
        try:
            response: Response = await call_next(request)
        except Exception as exc:  # HTTP request error boundary
            logger.error("unhandled_error", error=str(exc), path=request.url.path)
            response = JSONResponse({"error": "Internal server error"}, status_code=500)
        duration_ms = round((time.monotonic() - start) * 1000, 1)
        if response.status_code >= _HTTP_ERROR_THRESHOLD:
            dashboard.inc_counter("api_requests_failed")
            logger.warning(
                "request_failed",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=duration_ms,
            )
        else:
            logger.debug(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=duration_ms,
            )
        dashboard.inc_counter("api_requests_total")
        return response

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {
            "status": "ok",
            "state": dashboard.state.value,
            "connectivity": dashboard.connectivity.value,
        }

    @app.get("/api/v1/snapshot")
    async def get_snapshot() -> JSONResponse:
        return JSONResponse(
            {"data": dashboard.snapshot.to_dict(), "meta": dashboard.status()}
        )

    @app.get("/api/v1/peers/{peer_id}")
    async def get_peer(peer_id: int) -> JSONResponse:
        detail = dashboard.peer_detail(peer_id)
        if detail is None:
            return JSONResponse({"error": f"peer not found: {peer_id}"}, status_code=404)
        return JSONResponse({"data": detail})

    @app.get("/api/v1/events")
    async def read_events(
        since: int = Query(default=0, ge=0),
        wait_ms: int = Query(default=0, ge=0),
    ) -> JSONResponse:
        wait = min(wait_ms, max_wait_ms) / 1000
        result = await dashboard.buffer.read_since(since, wait)
        return JSONResponse(result.to_dict())

    @app.get("/api/v1/events/recent")
    async def recent_events() -> JSONResponse:
        return JSONResponse({"data": [record.to_dict() for record in dashboard.recent_events]})

    return app


async def serve_api(app: FastAPI, config: ApiConfig) -> None:
    """Run uvicorn as an asyncio server until cancelled."""
    server_config = uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_level="warning",
        access_log=False,
    )
    server = uvicorn.Server(server_config)
    await server.serve()
