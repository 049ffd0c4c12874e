r"""nodewatch -- Live dashboard engine for a Bitcoin Core node.

A single async service polls a node over JSON-RPC, listens for ZMQ block
and transaction notifications, and keeps a consistent snapshot of chain,
network, mempool, traffic, and peer state for renderers.

Architecture follows a layered DAG where imports flow strictly downward:

```text
              services         Refresh orchestration and read API
                 |
               core            RPC gateway, event buffer, ZMQ, base service
                 |
               utils           Host safety, bounded HTTP bodies
                 |
              models           Pure dataclasses and enums (zero I/O)
```

Note:
    Top-level imports (``from nodewatch import Dashboard``) use lazy loading
    and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("nodewatch")

__all__ = [
    "BaseService",
    "Dashboard",
    "DashboardConfig",
    "EventBuffer",
    "HostSafetyValidator",
    "Logger",
    "RpcGateway",
    "RuntimeConfig",
    "Section",
    "Snapshot",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("nodewatch.core", "BaseService"),
    "EventBuffer": ("nodewatch.core", "EventBuffer"),
    "Logger": ("nodewatch.core", "Logger"),
    "RpcGateway": ("nodewatch.core", "RpcGateway"),
    "RuntimeConfig": ("nodewatch.core", "RuntimeConfig"),
    "Section": ("nodewatch.models", "Section"),
    "Snapshot": ("nodewatch.models", "Snapshot"),
    "HostSafetyValidator": ("nodewatch.utils", "HostSafetyValidator"),
    "Dashboard": ("nodewatch.services", "Dashboard"),
    "DashboardConfig": ("nodewatch.services", "DashboardConfig"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'nodewatch' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
