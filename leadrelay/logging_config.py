"""Structured logging for LeadRelay.

Every record is one JSON line on stdout. Context dicts pass through a
redaction step, so credentials and customer numbers never reach the logs
in clear.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

SERVICE_NAME = "leadrelay"

REDACTED = "***"
SECRET_KEYS = {
    "api_key",
    "apikey",
    "authorization",
    "admin_token",
    "x_admin_token",
    "private_key",
    "openrouter_api_key",
    "evolution_api_key",
}
NUMBER_KEYS = {"sender", "number", "remote_jid", "sales_number"}

QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "googleapiclient.discovery_cache",
    "uvicorn.access",
)


def mask_number(number: Optional[str]) -> str:
    """Keep the last four digits of a phone number or JID."""
    if not number:
        return "<none>"
    digits = number.split("@", 1)[0]
    return f"...{digits[-4:]}"


def redact_context(context: Any) -> Any:
    if isinstance(context, dict):
        cleaned = {}
        for key, value in context.items():
            normalized = str(key).lower().replace("-", "_")
            if normalized in SECRET_KEYS:
                cleaned[key] = REDACTED
            elif normalized in NUMBER_KEYS and isinstance(value, str) and not value.startswith("..."):
                cleaned[key] = mask_number(value)
            else:
                cleaned[key] = redact_context(value)
        return cleaned
    if isinstance(context, list):
        return [redact_context(item) for item in context]
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with redacted context."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = redact_context(context)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # UUIDs and datetimes in context
        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{SERVICE_NAME}.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Tags every line of one pipeline run with its instance and sender.

    Per-call ``context=`` entries are merged over the fixed ones.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = kwargs.pop("context", None)
        if context or self.extra:
            kwargs["extra"] = {"context": {**self.extra, **(context or {})}}
        return msg, kwargs
