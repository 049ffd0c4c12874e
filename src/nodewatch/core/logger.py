"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module so every component logs a
snake_case event name followed by structured fields, either as
human-readable key=value pairs (default) or as JSON objects.

Values containing spaces, equals signs, or quotes are escaped and quoted.
Long values are truncated. Fields whose key names a credential
(``password``, ``authorization``, ...) are replaced with ``***`` so RPC
credentials never reach log output.

``StructuredFormatter`` reads the ``structured_kv`` extra field attached by
``Logger`` and appends it as key=value pairs. The CLI installs it on the
root handler so plain ``logging.getLogger()`` calls (aiohttp, uvicorn)
share the same line format.

Examples:
    ```python
    from nodewatch.core.logger import Logger

    logger = Logger("dashboard")
    logger.info("refresh_applied", kind="full", generation=3)
    # Output: refresh_applied kind=full generation=3

    logger.info("connecting", url="http://127.0.0.1:8332", password="hunter2")
    # Output: connecting url=http://127.0.0.1:8332 password=***
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


REDACTED = "***"


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Args:
        kwargs: Key-value pairs to format.
        max_value_length: Maximum characters per value before truncation.
            Pass None to disable truncation.
        prefix: String prepended to the output (default: single space).

    Returns:
        Formatted string, e.g. ' key1=value1 key2="value with spaces"'.
        Returns empty string if kwargs is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in kwargs.items():
        s = _truncate(str(v), max_value_length)
        if not s or " " in s or "=" in s or '"' in s or "'" in s:
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")

    return prefix + " ".join(parts)


def _truncate(s: str, max_value_length: int | None) -> str:
    if max_value_length and len(s) > max_value_length:
        return s[:max_value_length] + f"...<truncated {len(s) - max_value_length} chars>"
    return s


class StructuredFormatter(logging.Formatter):
    """Formats all log records as ``level logger message key=value...``.

    With ``json_output=True`` every record becomes one JSON object instead,
    which is what ``--json-logs`` installs on the root handler.
    """

    def __init__(self, *, json_output: bool = False) -> None:
        super().__init__()
        self._json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if self._json_output:
            payload = {
                "timestamp": datetime.datetime.fromtimestamp(
                    record.created, datetime.UTC
                ).isoformat(),
                "level": record.levelname.lower(),
                "service": record.name,
                "message": record.getMessage(),
                **extra,
            }
            if record.exc_info:
                payload["exception"] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


class Logger:
    """Structured logger that appends keyword arguments as extra fields.

    All public methods mirror the standard logging API with an added
    ``**kwargs`` parameter.

    Examples:
        ```python
        logger = Logger("rpc")
        logger.debug("batch_sent", calls=6, endpoint="http://127.0.0.1:8332")
        ```
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000
    _SENSITIVE_KEYS: ClassVar[tuple[str, ...]] = (
        "password",
        "passwd",
        "authorization",
        "auth",
        "secret",
        "token",
        "cookie",
    )

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
    ) -> None:
        """Initialize a structured logger.

        Args:
            name: Logger name, typically the component name.
            json_output: If True, emit JSON objects instead of key=value pairs.
            max_value_length: Maximum character length for individual values
                before truncation. Defaults to 1000.
        """
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length

    @property
    def name(self) -> str:
        return self._logger.name

    @classmethod
    def _is_sensitive(cls, key: str) -> bool:
        lowered = key.lower()
        return any(marker in lowered for marker in cls._SENSITIVE_KEYS)

    def _clean(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        """Redact credential fields and pre-truncate long values."""
        cleaned: dict[str, Any] = {}
        for k, v in kwargs.items():
            if self._is_sensitive(k):
                cleaned[k] = REDACTED
                continue
            s = str(v)
            if self._max_value_length and len(s) > self._max_value_length:
                cleaned[k] = _truncate(s, self._max_value_length)
            else:
                cleaned[k] = v
        return cleaned

    def _format_json(self, msg: str, level: str, kwargs: dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
            "level": level,
            "service": self._logger.name,
            "message": msg,
            **kwargs,
        }
        return json.dumps(record, default=str)

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = self._clean(kwargs)
        if self._json_output:
            name = logging.getLevelName(level).lower()
            self._logger.log(level, self._format_json(msg, name, fields), exc_info=exc_info)
        else:
            extra = {"structured_kv": fields} if fields else {}
            self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log a DEBUG level message with optional key=value pairs."""
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log an INFO level message with optional key=value pairs."""
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log a WARNING level message with optional key=value pairs."""
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log an ERROR level message with optional key=value pairs."""
        self._log(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        """Log a CRITICAL level message with optional key=value pairs."""
        self._log(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log an ERROR level message with the current exception traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)
