"""Logging setup for hosts that let the package configure output.

Grant writes, rejections and read-time clamps log with ``extra`` fields.
In JSON mode those fields become top-level keys of each line, so a log
pipeline can filter on ``table`` or ``resource_id`` directly.
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional

from .config import settings

# Extra fields attached by this package's log calls.
_FIELDS = (
    "table",
    "granted_to",
    "granted_by",
    "resource_id",
    "permissions",
    "stored",
    "clamped",
    "user_id",
    "required",
    "resolved",
    "error_code",
    "status_code",
    "path",
    "method",
    "details",
    "log_level",
    "log_format",
)


class _JsonFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message, then known extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (name, getattr(record, name)) for name in _FIELDS if hasattr(record, name)
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


# Connection errors echo the database URL or DSN, password included.
_PASSWORD_PATTERNS = (
    re.compile(r"(://[^:/@\s]+:)[^@\s]+(?=@)"),
    re.compile(r"(?i)(password\s*=\s*)[^\s;]+"),
)


class _SecretFilter(logging.Filter):
    """Mask database passwords in messages and rendered tracebacks."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._redact(str(record.msg))
        if record.exc_text:
            record.exc_text = self._redact(record.exc_text)
        return True

    @staticmethod
    def _redact(text: str) -> str:
        for pattern in _PASSWORD_PATTERNS:
            text = pattern.sub(r"\1***", text)
        return text


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Install a stdout handler on the root logger.

    Args:
        log_level: Root level name. Defaults to ``settings.log_level``.
        log_format: ``"json"`` or ``"text"``. Defaults to ``settings.log_format``.
    """
    level = (log_level or settings.log_level).upper()
    fmt = (log_format or settings.log_format).lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_SecretFilter())
    if fmt == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Statement echo is opt-in through Settings.db_echo.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        "Logging configured", extra={"log_level": level, "log_format": fmt}
    )
