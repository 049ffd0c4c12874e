"""Shared fixtures for services.dashboard test package."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from support import FakeGatewayFactory, ManualClock, settle

from nodewatch.services.dashboard import Dashboard, DashboardConfig, RefreshTimingConfig
from nodewatch.utils.host import HostSafetyValidator


@pytest.fixture
def gateways() -> FakeGatewayFactory:
    return FakeGatewayFactory()


@pytest.fixture
def subscribers() -> MagicMock:
    """Subscriber factory returning a running mock subscriber per address."""

    def build(address: str, sink: Any) -> MagicMock:
        subscriber = MagicMock()
        subscriber.address = address
        subscriber.sink = sink
        subscriber.running = True
        subscriber.stop = AsyncMock()
        return subscriber

    return MagicMock(side_effect=build)


@pytest.fixture
def dashboard_config() -> DashboardConfig:
    """Dashboard config with no long-poll wait so the reader never blocks on real time."""
    return DashboardConfig(
        timing=RefreshTimingConfig(
            debounce=0.25,
            event_fallback_interval=15.0,
            peers_min_interval=10.0,
            long_poll_wait=0.0,
            event_poll_fast=0.25,
            event_poll_slow=2.0,
        )
    )


@pytest.fixture
async def dashboard(
    dashboard_config: DashboardConfig,
    clock: ManualClock,
    gateways: FakeGatewayFactory,
    subscribers: MagicMock,
) -> AsyncIterator[Dashboard]:
    """Dashboard wired to fake gateways, a mock subscriber, and a manual clock."""
    service = Dashboard(
        dashboard_config,
        clock=clock,
        validator=HostSafetyValidator(),
        gateway_factory=gateways,  # type: ignore[arg-type]
        subscriber_factory=subscribers,
    )
    yield service
    await service.stop_session()
    for gateway in gateways.gateways:
        gateway.release()
    await settle()
