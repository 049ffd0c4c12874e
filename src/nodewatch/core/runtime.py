"""Connection settings for one dashboard session.

A [RuntimeConfig][nodewatch.core.runtime.RuntimeConfig] is immutable: the
orchestrator never edits the active one, it replaces it through
[Dashboard.reconfigure()][nodewatch.services.dashboard.Dashboard.reconfigure],
which starts a new generation. Every replacement passes through
[ensure_safe_host()][nodewatch.core.runtime.ensure_safe_host] first.

Out-of-range numeric settings are clamped rather than rejected, so a
hand-edited YAML file with ``poll_interval: 0`` still yields a working
session.

See Also:
    [HostSafetyValidator][nodewatch.utils.host.HostSafetyValidator]:
        Performs the host classification.
    [RpcGateway][nodewatch.core.rpc.RpcGateway]: Consumes the URL,
        credentials, wallet, and transport limits.
"""

from __future__ import annotations

import os
from typing import Any, ClassVar
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from rfc3986 import uri_reference
from rfc3986.exceptions import RFC3986Exception

from nodewatch.utils.host import HostSafetyValidator

from .exceptions import UnsafeHostError


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class RuntimeConfig(BaseModel):
    """RPC target, credentials, and event source for one session.

    The password is either given directly or read from the environment
    variable named by ``password_env``. It is a ``SecretStr`` and never
    appears in ``repr`` or logs.

    Attributes:
        url: JSON-RPC endpoint, e.g. ``http://127.0.0.1:8332``. Must not
            embed credentials.
        user: RPC user (``rpcuser``).
        password: RPC password (``rpcpassword``).
        password_env: Environment variable holding the password.
        wallet: Wallet name; when set, calls go to ``<url>/wallet/<name>``.
        poll_interval: Base full-refresh interval in seconds (clamped 1..3600).
        zmq_address: ZMQ publisher endpoint, e.g. ``tcp://127.0.0.1:28332``.
            Empty disables the event subscriber.
        zmq_buffer_limit: Event buffer capacity in records (clamped 50..100000).
        timeout: Per-request timeout in seconds.
        max_in_flight: Concurrent RPC requests allowed per gateway.
        max_response_size: Largest accepted response body in bytes.
    """

    model_config = ConfigDict(frozen=True)

    POLL_INTERVAL_BOUNDS: ClassVar[tuple[float, float]] = (1.0, 3600.0)
    BUFFER_LIMIT_BOUNDS: ClassVar[tuple[int, int]] = (50, 100_000)

    url: str = Field(default="http://127.0.0.1:8332", min_length=1, description="RPC URL")
    user: str = Field(default="", description="RPC user")
    password: SecretStr = Field(default=SecretStr(""), description="RPC password")
    password_env: str | None = Field(
        default=None, description="Environment variable holding the RPC password"
    )
    wallet: str = Field(default="", description="Wallet name for wallet-scoped calls")
    poll_interval: float = Field(default=5.0, description="Full refresh interval (seconds)")
    zmq_address: str = Field(default="", description="ZMQ publisher address")
    zmq_buffer_limit: int = Field(default=5000, description="Event buffer capacity")
    timeout: float = Field(default=30.0, ge=0.1, le=600.0, description="RPC request timeout")
    max_in_flight: int = Field(default=8, ge=1, le=256, description="Concurrent RPC requests")
    max_response_size: int = Field(
        default=16 * 1024 * 1024, ge=1024, description="Max RPC response body (bytes)"
    )

    @model_validator(mode="before")
    @classmethod
    def resolve_password(cls, data: Any) -> Any:
        """Resolve the password from ``password_env`` when not given inline."""
        if isinstance(data, dict) and not data.get("password") and data.get("password_env"):
            env_var = data["password_env"]
            value = os.getenv(env_var)
            if not value:
                raise ValueError(f"{env_var} environment variable not set")
            data = {**data, "password": SecretStr(value)}
        return data

    @field_validator("url", "user", "wallet", "zmq_address")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("url")
    @classmethod
    def reject_userinfo(cls, v: str) -> str:
        """Credentials belong in ``user``/``password``, never in the URL."""
        try:
            userinfo = uri_reference(v).userinfo
        except RFC3986Exception:
            return v
        if userinfo:
            raise ValueError("credentials in url are not allowed; use user and password")
        return v

    @field_validator("poll_interval")
    @classmethod
    def clamp_poll_interval(cls, v: float) -> float:
        return _clamp(v, *cls.POLL_INTERVAL_BOUNDS)

    @field_validator("zmq_buffer_limit")
    @classmethod
    def clamp_buffer_limit(cls, v: int) -> int:
        return int(_clamp(v, *cls.BUFFER_LIMIT_BOUNDS))

    @property
    def endpoint_url(self) -> str:
        """URL the JSON-RPC requests are posted to."""
        base = self.url.rstrip("/")
        if not self.wallet:
            return base
        return f"{base}/wallet/{quote(self.wallet, safe='')}"

    @property
    def events_enabled(self) -> bool:
        return bool(self.zmq_address)


def ensure_safe_host(
    config: RuntimeConfig, validator: HostSafetyValidator | None = None
) -> RuntimeConfig:
    """Return ``config`` if its URL passes host validation.

    Args:
        config: Candidate configuration.
        validator: Validator to use; defaults to one built from the
            environment (``DANGER_INSECURE_RPC``).

    Raises:
        UnsafeHostError: If the URL targets a public or unparseable host.
    """
    validator = validator or HostSafetyValidator.from_env()
    verdict = validator.classify(config.url)
    if not verdict.safe:
        raise UnsafeHostError(config.url, verdict.host, verdict.reason or "unsafe RPC host")
    return config
