"""Logging setup for the cache server.

Modules log through ``logging.getLogger(__name__)`` and attach structured
data as ``extra={"fields": {...}}``. The formatters here render those fields
either as trailing ``key=value`` pairs or as JSON lines.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from rich.console import Console
from rich.logging import RichHandler

# Loggers that get the same handler as the application
_APP_LOGGERS = ("artifact_cache", "uvicorn", "uvicorn.error")


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "fields", None) or {}


def _format_value(value: Any) -> str:
    text = str(value)
    if text == "" or any(c.isspace() for c in text):
        return json.dumps(text)
    return text


class KeyValueFormatter(logging.Formatter):
    """Message followed by the record's fields as ``key=value`` pairs."""

    # RichHandler calls formatMessage directly for records with tracebacks
    def formatMessage(self, record: logging.LogRecord) -> str:
        text = super().formatMessage(record)
        fields = _record_fields(record)
        if not fields:
            return text

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in fields.items())
        return f"{text} {pairs}"


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_record_fields(record))
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(log_json: bool = False, no_color: bool = False, level: int = logging.INFO) -> None:
    """
    Install a single handler on the application and uvicorn loggers.

    Args:
        log_json: Emit JSON lines instead of human-readable text
        no_color: Plain text without rich rendering (ignored with log_json)
        level: Minimum level for application records
    """
    handler: logging.Handler
    if log_json:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
    elif no_color:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(KeyValueFormatter("%(asctime)s %(levelname)-7s %(message)s"))
    else:
        handler = RichHandler(console=Console(), show_path=False, rich_tracebacks=True)
        handler.setFormatter(KeyValueFormatter("%(message)s"))

    for name in _APP_LOGGERS:
        log = logging.getLogger(name)
        log.handlers = [handler]
        log.setLevel(level)
        log.propagate = False
