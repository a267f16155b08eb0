from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from app.context import get_correlation_id
from app.core.config import get_settings


# extras copied from `extra={...}` into the structured output
LOG_FIELDS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "subscription_id",
    "user_id",
    "service_name",
    "from_month",
    "to_month",
    "candidate_count",
    "total",
    "count",
    "event_name",
    "error",
)
MAX_ERROR_LENGTH = 500

_CONFIGURED_FLAG = "_subscriptions_configured"
_base_record_factory = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _base_record_factory(*args, **kwargs)
    record.correlation_id = get_correlation_id()
    return record


class CorrelationIdFilter(logging.Filter):
    """Backfills ``correlation_id`` on records built before the factory was installed."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return True


def extract_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = {name: record.__dict__[name] for name in LOG_FIELDS if name in record.__dict__}
    error = fields.get("error")
    if isinstance(error, str):
        fields["error"] = error[:MAX_ERROR_LENGTH]
    return fields


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        fields = extract_fields(record)
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": fields,
        }
        return json.dumps(payload, default=str)


class KeyValueLogFormatter(logging.Formatter):
    """Single-line ``key=value`` output for local development."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        pairs = [f"correlation_id={getattr(record, 'correlation_id', None) or '-'}"]
        pairs.extend(f"{key}={value}" for key, value in extract_fields(record).items())
        return f"{line} {' '.join(pairs)}"


def configure_logging() -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, _CONFIGURED_FLAG, False):
        return

    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(KeyValueLogFormatter() if settings.log_format == "text" else JsonLogFormatter())
    handler.addFilter(CorrelationIdFilter())

    logging.setLogRecordFactory(_record_factory)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    setattr(root_logger, _CONFIGURED_FLAG, True)
