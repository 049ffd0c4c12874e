"""Classification of RPC endpoints as local/private or public.

A node's RPC port gives full control of the node and its wallets, and the
credentials travel in cleartext Basic auth. nodewatch therefore refuses to
talk to any RPC host that is not on loopback or a private network unless
the operator explicitly sets ``DANGER_INSECURE_RPC=1``.

Classification is pure and synchronous. Hostnames are never resolved:
``localhost`` is the only name accepted, every other non-literal host is
unsafe.

See Also:
    [RpcGateway][nodewatch.core.rpc.RpcGateway]: Refuses to be built for
        an unsafe URL.
    [Dashboard.reconfigure()][nodewatch.services.dashboard.Dashboard.reconfigure]:
        Validates every configuration change before applying it.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network, ip_address, ip_network
from typing import ClassVar

from rfc3986 import uri_reference
from rfc3986.exceptions import RFC3986Exception


ALLOW_INSECURE_ENV = "DANGER_INSECURE_RPC"

UNSAFE_HOST_HINT = f"RPC URL must be localhost/private unless {ALLOW_INSECURE_ENV}=1"


@dataclass(frozen=True, slots=True)
class HostVerdict:
    """Outcome of a host classification.

    Attributes:
        safe: Whether the URL may be used.
        host: Host extracted from the URL, or ``None`` if unparseable.
        reason: Human-readable rejection reason when ``safe`` is False.
    """

    safe: bool
    host: str | None = None
    reason: str | None = None


class HostSafetyValidator:
    """Decide whether an RPC URL targets a loopback or private address.

    Examples:
        ```python
        validator = HostSafetyValidator()
        validator.classify("http://10.1.2.3:8332").safe   # True
        validator.classify("http://8.8.8.8:8332").safe    # False

        HostSafetyValidator(allow_insecure=True).classify("http://8.8.8.8").safe  # True
        ```
    """

    SAFE_NETWORKS: ClassVar[tuple[IPv4Network | IPv6Network, ...]] = (
        # IPv4
        ip_network("127.0.0.0/8"),
        ip_network("10.0.0.0/8"),
        ip_network("172.16.0.0/12"),
        ip_network("192.168.0.0/16"),
        ip_network("100.64.0.0/10"),
        # IPv6
        ip_network("::1/128"),
        ip_network("fc00::/7"),
        ip_network("fe80::/10"),
    )
    SAFE_HOSTNAMES: ClassVar[frozenset[str]] = frozenset({"localhost"})

    def __init__(self, *, allow_insecure: bool = False) -> None:
        self._allow_insecure = allow_insecure

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> HostSafetyValidator:
        """Build a validator honouring the ``DANGER_INSECURE_RPC`` override."""
        env = os.environ if environ is None else environ
        return cls(allow_insecure=env.get(ALLOW_INSECURE_ENV, "").strip() == "1")

    @property
    def allow_insecure(self) -> bool:
        return self._allow_insecure

    @staticmethod
    def extract_host(url: str) -> str | None:
        """Return the bare host of ``url`` (brackets stripped), or ``None``."""
        if "://" not in url or "\x00" in url:
            return None
        try:
            host = uri_reference(url.strip()).normalize().host
        except RFC3986Exception:
            return None
        if not host:
            return None
        return host.strip("[]").split("%", 1)[0].lower() or None

    @classmethod
    def is_safe_host(cls, host: str) -> bool:
        if host in cls.SAFE_HOSTNAMES:
            return True
        try:
            ip = ip_address(host)
        except ValueError:
            return False
        return cls._is_safe_ip(ip)

    @classmethod
    def _is_safe_ip(cls, ip: IPv4Address | IPv6Address) -> bool:
        if isinstance(ip, IPv6Address) and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped
        return any(ip in net for net in cls.SAFE_NETWORKS if net.version == ip.version)

    def classify(self, url: str) -> HostVerdict:
        """Classify ``url``.

        Returns:
            A [HostVerdict][nodewatch.utils.host.HostVerdict]. With the
            override active every URL is safe.
        """
        host = self.extract_host(url)
        if self._allow_insecure:
            return HostVerdict(safe=True, host=host)
        if host is None:
            return HostVerdict(
                safe=False,
                reason=f"could not determine host from RPC URL; {UNSAFE_HOST_HINT}",
            )
        if self.is_safe_host(host):
            return HostVerdict(safe=True, host=host)
        return HostVerdict(
            safe=False,
            host=host,
            reason=f"blocked RPC host {host!r}: {UNSAFE_HOST_HINT}",
        )
