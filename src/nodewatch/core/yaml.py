"""YAML configuration loading.

Uses ``yaml.safe_load`` so configuration files can never instantiate
arbitrary Python objects. Used by
[BaseService.from_yaml()][nodewatch.core.base_service.BaseService.from_yaml]
and by the CLI's reload-on-SIGHUP handler.

Examples:
    ```python
    from nodewatch.core.yaml import load_yaml

    config = load_yaml("config/dashboard.yaml")
    ```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError


def load_yaml(config_path: str) -> dict[str, Any]:
    """Load and parse a YAML configuration file.

    Args:
        config_path: Path to the YAML file (absolute or relative).

    Returns:
        Parsed configuration as a dictionary. An empty file yields ``{}``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the file is not valid YAML or its top
            level is not a mapping.

    Warning:
        The structure is not validated here. Pass the result to a Pydantic
        model such as
        [DashboardConfig][nodewatch.services.dashboard.DashboardConfig].
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config root must be a mapping, got {type(data).__name__}: {config_path}"
        )
    return data
