"""Services layer: business logic on top of [nodewatch.core][nodewatch.core].

Services depend on [nodewatch.core][nodewatch.core],
[nodewatch.utils][nodewatch.utils], and [nodewatch.models][nodewatch.models].
Each service extends [BaseService][nodewatch.core.base_service.BaseService]
and implements ``async def run()`` for one cycle of work.

Attributes:
    Dashboard: Keeps a live snapshot of one Bitcoin Core node, refreshed by
        a polling schedule and by ZMQ event hints, and exposes it through an
        optional read-only HTTP API.

Examples:
    ```python
    from nodewatch.services import Dashboard

    dashboard = Dashboard.from_yaml("config/dashboard.yaml")
    async with dashboard:
        await dashboard.run_forever()
    ```
"""

from .dashboard import ApiConfig, Dashboard, DashboardConfig, RefreshTimingConfig


__all__ = ["ApiConfig", "Dashboard", "DashboardConfig", "RefreshTimingConfig"]
