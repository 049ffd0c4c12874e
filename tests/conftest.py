"""
Pytest configuration and shared fixtures for nodewatch tests.

Provides:
- A hand-driven clock (see ``support.ManualClock``)
- Sample Bitcoin Core RPC results
- A sample ZMQ notification
"""

from __future__ import annotations

import logging
from typing import Any

import pytest
from support import ManualClock, make_notification, rpc_results

from nodewatch.models.event import EventNotification


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


# ============================================================================
# Shared Fixtures
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def sample_results() -> dict[str, Any]:
    return rpc_results()


@pytest.fixture
def notification() -> EventNotification:
    return make_notification()
