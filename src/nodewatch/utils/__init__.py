"""Endpoint safety classification and bounded HTTP helpers.

The utils layer sits in the middle of the diamond DAG, depending only on
third-party libraries and [nodewatch.models][nodewatch.models].

Attributes:
    host: [HostSafetyValidator][nodewatch.utils.host.HostSafetyValidator]
        classifying RPC URLs as loopback/private or public, with the
        ``DANGER_INSECURE_RPC`` override.
    http: Size-bounded response body reading for aiohttp.

Note:
    The utils layer has **zero** imports from ``nodewatch.core`` or
    ``nodewatch.services``.
"""

from .host import ALLOW_INSECURE_ENV, HostSafetyValidator, HostVerdict
from .http import read_bounded_body, read_bounded_json


__all__ = [
    "ALLOW_INSECURE_ENV",
    "HostSafetyValidator",
    "HostVerdict",
    "read_bounded_body",
    "read_bounded_json",
]
