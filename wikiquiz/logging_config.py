"""
Logging setup for the service: readable lines locally, JSON lines in production.
"""
import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Set by the request middleware; every JSON entry logged while serving the
# request carries it.
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Fields the request middleware passes through ``extra``
REQUEST_FIELDS = ("method", "path", "status_code", "duration_ms")

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "openai", "google_genai", "sqlalchemy.engine")

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, Czech text left unescaped."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_context.get()
        if request_id:
            entry["request_id"] = request_id

        entry.update(
            (name, getattr(record, name)) for name in REQUEST_FIELDS if hasattr(record, name)
        )

        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Route all logging to stdout at the given level.

    Args:
        level: Log level name (unknown names fall back to INFO)
        json_format: Emit JSON lines instead of plain text
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = {"()": JSONFormatter} if json_format else {"format": TEXT_FORMAT}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"service": formatter},
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "service",
                    "stream": sys.stdout,
                },
            },
            "root": {"level": log_level, "handlers": ["stdout"]},
            "loggers": {name: {"level": logging.WARNING} for name in QUIET_LOGGERS},
        }
    )
