"""
Logging setup shared by the API and the player.

JSON lines in production (one object per record, with any ``extra_fields``
merged in), plain text for local runs and tests.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.config import settings

SERVICE_NAME = "somi-api"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that drown out request logs at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "urllib3", "httpx", "httpcore", "anthropic")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            payload.update(extra)

        return json.dumps(payload, default=str)


def _use_json(log_format: str) -> bool:
    return log_format.lower() == "json" or settings.ENVIRONMENT == "production"


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> logging.Logger:
    """
    Install a single stdout handler on the root logger.

    ``level`` and ``log_format`` default to LOG_LEVEL and LOG_FORMAT.
    Calling this again replaces the handler rather than stacking another.
    """
    resolved_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    formatter = JSONFormatter() if _use_json(log_format or settings.LOG_FORMAT) else logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved_level)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(resolved_level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root
