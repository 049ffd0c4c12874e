"""Dashboard service configuration models.

See Also:
    [Dashboard][nodewatch.services.dashboard.Dashboard]: The service class
        that consumes these configurations.
    [BaseServiceConfig][nodewatch.core.base_service.BaseServiceConfig]:
        Base class providing ``max_consecutive_failures`` and ``metrics``.
    [RuntimeConfig][nodewatch.core.runtime.RuntimeConfig]: Connection
        settings, replaceable at runtime.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from nodewatch.core.base_service import BaseServiceConfig
from nodewatch.core.runtime import RuntimeConfig


class RefreshTimingConfig(BaseModel):
    """Fixed delays used by the refresh orchestrator (seconds).

    See Also:
        [DashboardConfig][nodewatch.services.dashboard.DashboardConfig]:
            Parent config that embeds this model.
    """

    debounce: float = Field(
        default=0.25, ge=0.0, le=10.0, description="Partial refresh debounce window"
    )
    event_fallback_interval: float = Field(
        default=15.0,
        ge=1.0,
        le=3600.0,
        description="Minimum full refresh interval while the event source is connected",
    )
    peers_min_interval: float = Field(
        default=10.0, ge=0.0, le=3600.0, description="Minimum interval between peer refreshes"
    )
    long_poll_wait: float = Field(
        default=5.0, ge=0.0, le=60.0, description="Event read long-poll bound"
    )
    event_poll_fast: float = Field(
        default=0.25, ge=0.0, le=60.0, description="Pause between event reads while connected"
    )
    event_poll_slow: float = Field(
        default=2.0, ge=0.1, le=60.0, description="Pause between event reads while disconnected"
    )
    recent_events: int = Field(
        default=80, ge=1, le=10_000, description="Event records kept for renderers"
    )


class ApiConfig(BaseModel):
    """Read-only HTTP API exposing the snapshot and event stream.

    Disabled by default. Keep ``host`` on loopback unless the API sits
    behind an authenticating proxy: peer details include IP addresses.
    """

    enabled: bool = Field(default=False, description="Serve the read API")
    host: str = Field(default="127.0.0.1", description="HTTP bind address")
    port: int = Field(default=8090, ge=1, le=65535, description="HTTP port")
    max_wait_ms: int = Field(
        default=30_000, ge=0, le=120_000, description="Upper bound for wait_ms on /events"
    )


class DashboardConfig(BaseServiceConfig):
    """Dashboard service configuration.

    Attributes:
        runtime: Initial connection settings; later replaced through
            [reconfigure()][nodewatch.services.dashboard.Dashboard.reconfigure].
        timing: Orchestrator delays.
        api: Read API settings.
        topics: ZMQ topics to subscribe to.
    """

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    timing: RefreshTimingConfig = Field(default_factory=RefreshTimingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    topics: list[str] = Field(
        default_factory=lambda: ["hashblock", "hashtx"],
        min_length=1,
        description="ZMQ topics to subscribe to",
    )

    @model_validator(mode="after")
    def _validate_metrics_port(self) -> DashboardConfig:
        if self.api.enabled and self.metrics.enabled and self.api.port == self.metrics.port:
            raise ValueError(f"api.port and metrics.port must differ (both {self.api.port})")
        return self
