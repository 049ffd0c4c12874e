"""Live node dashboard: refresh orchestrator, section mapping, and read API.

See Also:
    [Dashboard][nodewatch.services.dashboard.service.Dashboard]: The service class.
    [DashboardConfig][nodewatch.services.dashboard.configs.DashboardConfig]:
        Service configuration.
"""

from .configs import ApiConfig, DashboardConfig, RefreshTimingConfig
from .service import Dashboard


__all__ = ["ApiConfig", "Dashboard", "DashboardConfig", "RefreshTimingConfig"]
