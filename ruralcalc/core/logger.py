"""
Structured logging with correlation IDs and a dedicated audit trail.
Every calculation can be traced end to end through its correlation_id.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, MutableMapping, Optional, Tuple

from ruralcalc.core.config import settings

LOGGER_NAME = "ruralcalc"
AUDIT_LOGGER_NAME = "ruralcalc.audit"


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        audit = getattr(record, "audit", None)
        if audit:
            log_data["audit"] = audit

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class CorrelationAdapter(logging.LoggerAdapter):
    """Stamps every record with the correlation_id it was created for."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("correlation_id", self.extra["correlation_id"])
        kwargs["extra"] = extra
        return f"[{self.extra['correlation_id']}] {msg}", kwargs


def setup_logging(level: Optional[str] = None, format_type: Optional[str] = None) -> None:
    """
    Configures the engine loggers with a single stdout handler.
    Safe to call more than once: previous handlers installed here are replaced.
    """
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)

    if (format_type or settings.LOG_FORMAT) == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(log_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def get_logger_with_correlation(correlation_id: str) -> CorrelationAdapter:
    """Returns a logger adapter bound to the given correlation_id."""
    return CorrelationAdapter(logger, {"correlation_id": correlation_id})


def audit_log(action: str, user: str, resource: str, details: Optional[Dict[str, Any]] = None) -> None:
    """
    Writes an audit record. Records are append-only facts about what was computed,
    never inputs to the computation itself.
    """
    record = {
        "action": action,
        "user": user,
        "resource": resource,
        "details": details or {},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    audit_logger.info(
        f"AUDIT action={action} user={user} resource={resource}",
        extra={"audit": record, "correlation_id": record["details"].get("correlation_id")},
    )


logger = logging.getLogger(LOGGER_NAME)
audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
