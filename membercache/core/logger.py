"""
Structured Logger - JSON event logging shared by every membercache component.

Each record is a single JSON object with:
- Standard fields (timestamp, level, event, component, version)
- Optional correlation ID taken from the current context
- Secret redaction everywhere and ID masking in production
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Optional
from contextvars import ContextVar

correlation_id_context: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)

LOG_FORMAT_VERSION = "1.0"
SECRET_MARKERS = ("password", "token", "secret")
PRODUCTION_MASKED_FIELDS = (
    "guild_id",
    "guild_ids",
    "member_id",
    "member_ids",
    "role_id",
    "role_ids",
    "user_id",
)

def _is_production() -> bool:
    return os.environ.get("PRODUCTION", "False").lower() == "true"

def log_json(component: str, level: str, event: str, **fields) -> None:
    """
    Emit one structured JSON log record.

    Args:
        component: Component name (e.g. "single_flight", "warmer")
        level: Log level ("debug", "info", "warning", "error", "critical")
        event: Event identifier
        **fields: Additional fields to log
    """
    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": level.upper(),
        "event": event,
        "component": component,
        "version": LOG_FORMAT_VERSION,
    }

    correlation_id = correlation_id_context.get(None)
    if correlation_id:
        log_entry["correlation_id"] = str(correlation_id)[:8]

    is_production = _is_production()
    for key, value in fields.items():
        lowered = key.lower()
        if any(marker in lowered for marker in SECRET_MARKERS):
            log_entry[key] = "REDACTED"
        elif is_production and key in PRODUCTION_MASKED_FIELDS:
            log_entry[key] = "REDACTED"
        elif key == "exc_info":
            exc_info = sys.exc_info() if value is True else value
            if isinstance(exc_info, tuple) and len(exc_info) >= 2 and exc_info[0]:
                log_entry["exception_type"] = exc_info[0].__name__
                log_entry["exception_message"] = str(exc_info[1])
        else:
            log_entry[key] = value

    json_str = json.dumps(log_entry, separators=(",", ":"), default=str)
    logging.getLogger("membercache").log(
        getattr(logging, level.upper(), logging.INFO), json_str
    )

def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> None:
    """
    Configure root handlers for JSON records.

    Args:
        debug: Emit DEBUG records when True, INFO otherwise
        log_file: Optional file receiving a copy of every record
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=handlers,
        force=True,
    )
    logging.getLogger("discord").setLevel(logging.INFO if debug else logging.WARNING)
    logging.captureWarnings(True)

class ComponentLogger:
    """
    Logger bound to one component name.

    All calls forward to :func:`log_json` with the component filled in.
    """

    def __init__(self, component_name: str):
        self.component_name = component_name

    def debug(self, event: str, **fields) -> None:
        log_json(self.component_name, "debug", event, **fields)

    def info(self, event: str, **fields) -> None:
        log_json(self.component_name, "info", event, **fields)

    def warning(self, event: str, **fields) -> None:
        log_json(self.component_name, "warning", event, **fields)

    def error(self, event: str, **fields) -> None:
        log_json(self.component_name, "error", event, **fields)

    def critical(self, event: str, **fields) -> None:
        log_json(self.component_name, "critical", event, **fields)
