"""
Abstract base class for long-running nodewatch services.

``BaseService[ConfigT]`` provides the standard lifecycle: structured
logging via [Logger][nodewatch.core.logger.Logger], graceful shutdown,
adaptive interval-based cycling with
[run_forever()][nodewatch.core.base_service.BaseService.run_forever],
consecutive failure limits, and Prometheus metrics through
[MetricsServer][nodewatch.core.metrics.MetricsServer].

Unlike a fixed-period loop, the delay between cycles is asked from
[cycle_interval()][nodewatch.core.base_service.BaseService.cycle_interval]
and re-derived whenever the service is
[woken][nodewatch.core.base_service.BaseService.wake], so a state change
(e.g. the event source connecting) can shorten or lengthen the current
wait without waiting it out.

See Also:
    [BaseServiceConfig][nodewatch.core.base_service.BaseServiceConfig]: Base
        configuration model for all services.
    [Dashboard][nodewatch.services.dashboard.Dashboard]: The refresh
        orchestrator built on this class.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from .logger import Logger
from .metrics import (
    OPERATION_DURATION_SECONDS,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
)
from .yaml import load_yaml


if TYPE_CHECKING:
    from types import TracebackType

    from nodewatch.models.constants import ServiceName


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class BaseServiceConfig(BaseModel):
    """Base configuration shared by all services that run in a loop.

    See Also:
        [BaseService][nodewatch.core.base_service.BaseService]: The abstract
            service class that consumes this configuration.
        [MetricsConfig][nodewatch.core.metrics.MetricsConfig]: Embedded
            configuration for the Prometheus metrics endpoint.
    """

    max_consecutive_failures: int = Field(
        default=0,
        ge=0,
        description="Stop after this many consecutive errors (0 = unlimited)",
    )
    metrics: MetricsConfig = Field(
        default_factory=MetricsConfig,
        description="Prometheus metrics configuration",
    )


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class BaseService(ABC, Generic[ConfigT]):
    """Abstract base class for all nodewatch services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [run()][nodewatch.core.base_service.BaseService.run] and
    [cycle_interval()][nodewatch.core.base_service.BaseService.cycle_interval].

    Attributes:
        SERVICE_NAME: Unique service identifier used in logging and metrics.
        CONFIG_CLASS: Pydantic model class used by the factory methods.
        _config: Typed service configuration.
        _logger: [Logger][nodewatch.core.logger.Logger] named after the service.
        _shutdown_event: Set once shutdown was requested.
        _wake_event: Set to interrupt the inter-cycle wait (also set on
            shutdown).

    Note:
        The lifecycle is ``async with service:`` then
        [run_forever()][nodewatch.core.base_service.BaseService.run_forever]
        (or a single [run()][nodewatch.core.base_service.BaseService.run]
        with ``--once``).
    """

    SERVICE_NAME: ClassVar[ServiceName]
    CONFIG_CLASS: ClassVar[type[BaseModel]]

    def __init__(self, config: ConfigT | None = None) -> None:
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = Logger(self.SERVICE_NAME)
        self._shutdown_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._cycle_started = time.monotonic()

    @property
    def config(self) -> ConfigT:
        """The typed service configuration (read-only)."""
        return self._config

    @abstractmethod
    async def run(self) -> None:
        """Execute one cycle of the service's main logic.

        Called repeatedly by
        [run_forever()][nodewatch.core.base_service.BaseService.run_forever].
        """
        ...

    @abstractmethod
    def cycle_interval(self) -> float:
        """Seconds between the start of one cycle and the next.

        Queried again every time the service is woken, so it may depend on
        live state.
        """
        ...

    def request_shutdown(self) -> None:
        """Request a graceful shutdown; safe to call from signal handlers."""
        self._shutdown_event.set()
        self._wake_event.set()

    @property
    def is_running(self) -> bool:
        """Whether the service is still active (shutdown not yet requested)."""
        return not self._shutdown_event.is_set()

    def wake(self, *, restart: bool = False) -> None:
        """Re-derive the current inter-cycle wait immediately.

        Args:
            restart: Count the next interval from now instead of from the
                start of the last cycle.
        """
        if restart:
            self._cycle_started = time.monotonic()
        self._wake_event.set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Wait for a shutdown signal, a wake-up, or a timeout.

        Returns ``True`` only if shutdown was requested. Use this instead of
        ``asyncio.sleep()`` to keep waits interruptible.
        """
        try:
            await asyncio.wait_for(self._wake_event.wait(), timeout=max(0.0, timeout))
        except TimeoutError:
            pass
        return not self.is_running

    async def _sleep_until_due(self) -> bool:
        """Sleep until the next cycle is due, re-deriving the delay on wake.

        Returns ``True`` if shutdown was requested.
        """
        while True:
            self._wake_event.clear()
            if not self.is_running:
                return True
            remaining = self._cycle_started + self.cycle_interval() - time.monotonic()
            if remaining <= 0:
                return False
            if await self.wait(remaining):
                return True
            if not self._wake_event.is_set():
                return False

    async def run_forever(self) -> None:
        """Run the service until shutdown with adaptive interval-based cycling.

        Repeatedly calls [run()][nodewatch.core.base_service.BaseService.run],
        then sleeps until ``cycle_interval()`` seconds after the cycle
        started. Exits on shutdown or when ``max_consecutive_failures``
        (``0`` disables the limit) is reached.

        ``CancelledError``, ``KeyboardInterrupt``, and ``SystemExit`` always
        propagate; every other exception is counted, logged, and the loop
        continues.
        """
        max_consecutive_failures = self._config.max_consecutive_failures

        if self._config.metrics.enabled:
            SERVICE_INFO.info({"service": self.SERVICE_NAME})

        self._logger.info(
            "run_forever_started",
            interval=self.cycle_interval(),
            max_consecutive_failures=max_consecutive_failures,
        )

        consecutive_failures = 0

        while self.is_running:
            self._cycle_started = time.monotonic()

            try:
                await self.run()

                self.inc_counter("cycles_success")
                self.observe_duration("cycle", time.monotonic() - self._cycle_started)
                self.set_gauge("last_cycle_timestamp", time.time())
                self.set_gauge("consecutive_failures", 0)

                consecutive_failures = 0
                self._logger.debug("cycle_completed", next_cycle_s=self.cycle_interval())

            except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                raise

            except Exception as e:  # Intentionally broad: top-level error boundary for run_forever
                consecutive_failures += 1

                self.inc_counter("cycles_failed")
                self.set_gauge("consecutive_failures", consecutive_failures)
                self.inc_counter(f"errors_{type(e).__name__}")

                self._logger.error(
                    "run_cycle_error",
                    error=str(e),
                    error_type=type(e).__name__,
                    consecutive_failures=consecutive_failures,
                )

                if 0 < max_consecutive_failures <= consecutive_failures:
                    self._logger.critical(
                        "max_consecutive_failures_reached",
                        failures=consecutive_failures,
                        limit=max_consecutive_failures,
                    )
                    break

            if await self._sleep_until_due():
                break

        self._logger.info("run_forever_stopped")

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, config_path: str, **kwargs: Any) -> Self:
        """Create a service instance from a YAML configuration file.

        See Also:
            [from_dict()][nodewatch.core.base_service.BaseService.from_dict]:
                Construct from a pre-parsed dictionary.
        """
        return cls.from_dict(load_yaml(config_path), **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> Self:
        """Create a service instance from a configuration dictionary."""
        config = cast("ConfigT", cls.CONFIG_CLASS(**data))
        return cls(config=config, **kwargs)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        """Mark the service as running on context entry."""
        self._shutdown_event.clear()
        self._wake_event.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        """Signal shutdown on context exit."""
        self.request_shutdown()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Custom Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a named gauge for this service; no-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """Increment a named counter for this service; no-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)

    def observe_duration(self, operation: str, seconds: float) -> None:
        """Record an operation duration; no-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        OPERATION_DURATION_SECONDS.labels(service=self.SERVICE_NAME, operation=operation).observe(
            seconds
        )
