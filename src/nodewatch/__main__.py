"""CLI entry point for the nodewatch dashboard service.

Runs the dashboard continuously (with an optional Prometheus metrics
server and read API) or performs a single full refresh with ``--once``
and prints the snapshot as JSON.

Examples:
    ```bash
    python -m nodewatch
    python -m nodewatch --config config/dashboard.yaml --log-level DEBUG
    python -m nodewatch --once | jq .data.chain
    ```
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from nodewatch.core import start_metrics_server
from nodewatch.core.exceptions import ConfigurationError
from nodewatch.core.logger import Logger, StructuredFormatter
from nodewatch.core.runtime import RuntimeConfig
from nodewatch.core.yaml import load_yaml
from nodewatch.models.constants import Connectivity
from nodewatch.services.dashboard import Dashboard, DashboardConfig


DEFAULT_CONFIG = Path("config") / "dashboard.yaml"

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="nodewatch",
        description="Live dashboard engine for a Bitcoin Core node",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Dashboard config path (default: {DEFAULT_CONFIG})",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one full refresh, print the snapshot as JSON, and exit",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit one JSON object per log line",
    )

    return parser.parse_args(argv)


def setup_logging(level: str, *, json_output: bool = False) -> None:
    """Install a ``StructuredFormatter`` on the root logger (stderr)."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(json_output=json_output))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def load_config(path: Path) -> DashboardConfig:
    """Load the dashboard config; a missing file yields the defaults.

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation.
    """
    data: dict[str, Any] = {}
    if path.exists():
        data = load_yaml(str(path))
    else:
        logger.warning("config_not_found", path=str(path))
    try:
        return DashboardConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid config {path}: {e}") from e


async def reload_runtime(dashboard: Dashboard, path: Path) -> bool:
    """Re-read ``path`` and apply its runtime section.

    Rejected or invalid configurations are logged and the prior
    configuration stays active.

    Returns:
        True if a new generation was started.
    """
    try:
        data = load_yaml(str(path))
        runtime = RuntimeConfig(**(data.get("runtime") or {}))
        await dashboard.reconfigure(runtime)
    except (ConfigurationError, ValidationError, FileNotFoundError) as e:
        logger.error("reload_rejected", path=str(path), error=str(e), error_type=type(e).__name__)
        return False
    logger.info("reload_applied", path=str(path), generation=dashboard.generation)
    return True


async def run_once(dashboard: Dashboard) -> int:
    """One full refresh; print the snapshot and return 1 unless it succeeded."""
    async with dashboard:
        await dashboard.run()
        payload = {"data": dashboard.snapshot.to_dict(), "meta": dashboard.status()}
    print(json.dumps(payload, indent=2, default=str))  # noqa: T201
    if dashboard.connectivity is not Connectivity.OK:
        logger.error("refresh_failed", error=dashboard.last_error)
        return 1
    return 0


async def run_continuous(dashboard: Dashboard, config_path: Path) -> int:
    """Run until SIGINT/SIGTERM; SIGHUP reloads the runtime configuration."""
    metrics_config = dashboard.config.metrics
    metrics_server = await start_metrics_server(metrics_config)
    if metrics_config.enabled:
        logger.info(
            "metrics_server_started",
            host=metrics_config.host,
            port=metrics_config.port,
            path=metrics_config.path,
        )

    reloads: set[asyncio.Task[bool]] = set()

    def handle_shutdown(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=sig.name)
        dashboard.request_shutdown()

    def handle_reload() -> None:
        logger.info("reload_signal", path=str(config_path))
        task = asyncio.create_task(reload_runtime(dashboard, config_path))
        reloads.add(task)
        task.add_done_callback(reloads.discard)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_shutdown, sig)
    loop.add_signal_handler(signal.SIGHUP, handle_reload)

    try:
        async with dashboard:
            await dashboard.run_forever()
        return 0
    except Exception as e:  # Intentionally broad: CLI error boundary for continuous mode
        logger.error("dashboard_failed", error=str(e), error_type=type(e).__name__)
        return 1
    finally:
        await metrics_server.stop()
        if metrics_config.enabled:
            logger.info("metrics_server_stopped")


async def main(argv: list[str] | None = None) -> int:
    """Parse args, build the dashboard, and run it."""
    args = parse_args(argv)
    setup_logging(args.log_level, json_output=args.json_logs)

    try:
        config = load_config(args.config)
        dashboard = Dashboard(config)
    except ConfigurationError as e:
        logger.error("config_rejected", path=str(args.config), error=str(e))
        return 1

    try:
        if args.once:
            return await run_once(dashboard)
        return await run_continuous(dashboard, args.config)
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 130


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
