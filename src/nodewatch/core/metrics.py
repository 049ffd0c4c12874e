"""
Prometheus metrics collection and HTTP exposition.

Module-level metric objects are process-wide singletons.
``BaseService.run_forever()`` records cycle outcomes and durations; the
dashboard adds refresh durations, staleness discards, and event counters
through ``set_gauge()``, ``inc_counter()`` and ``observe_duration()`` on
the base class.

``MetricsServer`` serves the registry over aiohttp for Prometheus
scraping. It is configured by ``MetricsConfig``, embedded in the
dashboard's YAML configuration.

Architecture:
    SERVICE_INFO:                 Static metadata set once at startup.
    SERVICE_GAUGE:                Point-in-time values (generation, buffer size).
    SERVICE_COUNTER:              Cumulative totals (refreshes, discards, events).
    OPERATION_DURATION_SECONDS:   Histogram of scheduler cycles and refresh batches.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    The endpoint is only started when ``enabled`` is True.
    """

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=9332, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Metric Objects
# ---------------------------------------------------------------------------

SERVICE_INFO = Info(
    "nodewatch_service",
    "Service information and metadata",
)

# RPC round trips are usually milliseconds; a slow node under IBD can take seconds.
OPERATION_DURATION_SECONDS = Histogram(
    "nodewatch_operation_duration_seconds",
    "Duration of scheduler cycles and refresh batches in seconds",
    ["service", "operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)

# Automatic names (BaseService.run_forever):
#   gauge:   consecutive_failures, last_cycle_timestamp
#   counter: cycles_success, cycles_failed, errors_{type}
# Dashboard names:
#   gauge:   generation, pending_sections, event_buffer_size, event_connected, degraded
#   counter: refresh_applied_{kind}, refresh_failed_{kind}, results_discarded_stale,
#            events_received, events_truncated

SERVICE_GAUGE = Gauge(
    "nodewatch_service_gauge",
    "Service gauge values (point-in-time state)",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "nodewatch_service_counter",
    "Service counter values (cumulative totals)",
    ["service", "name"],
)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=9332))
        await server.start()
        # ... service runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for scrape requests; no-op when disabled.

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Stop the HTTP server. Idempotent."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        """Serve the latest metrics in exposition format."""
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )


async def start_metrics_server(config: MetricsConfig | None = None) -> MetricsServer:
    """Create and start a metrics server.

    Returns:
        A running ``MetricsServer``. Call ``stop()`` during shutdown to
        release the port.
    """
    server = MetricsServer(config or MetricsConfig())
    await server.start()
    return server
