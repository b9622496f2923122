"""Logging setup for HitGuard.

Limiters and the middleware log through ``hitguard.*`` loggers and attach
rate limit fields (client, limiter, remaining allowance, ...) with
``extra=get_log_context(...)``. ``settings.log_format`` selects how those
records are rendered: plain text, text with the rate limit fields appended,
or one JSON object per line.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from hitguard.app.core.config import settings

# Record attributes carrying rate limit context
CONTEXT_FIELDS = (
    "request_id",
    "client_id",
    "limiter",
    "key_prefix",
    "remaining",
    "path",
    "method",
    "status_code",
)

# Attributes every LogRecord has, never reported as extra
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

_FORMATS = {
    "text": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    "structured": (
        "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
        " [limiter=%(limiter)s client_id=%(client_id)s remaining=%(remaining)s]"
    ),
}


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line.

    Context fields that are unset are left out. Any other attribute passed
    through ``extra`` ends up under the ``extra`` key.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.pathname}:{record.lineno}",
        }

        extra: Dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in CONTEXT_FIELDS:
                if value is not None:
                    entry[key] = value
            elif key not in _RECORD_ATTRS:
                extra[key] = value
        if extra:
            entry["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(entry, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Give every record all context fields so format strings can use them."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, None)
        return True


def get_logging_config() -> Dict[str, Any]:
    """Build the dictConfig for the current settings.

    Unknown formats fall back to plain text.
    """
    log_format = settings.log_format.lower()
    log_level = settings.log_level.upper()
    if log_format not in ("text", "structured", "json"):
        log_format = "text"

    formatters: Dict[str, Any] = {name: {"format": fmt} for name, fmt in _FORMATS.items()}
    formatters["json"] = {"()": "hitguard.app.core.logging.JSONFormatter"}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {
            "context": {"()": "hitguard.app.core.logging.ContextFilter"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": log_format,
                "filters": ["context"],
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "hitguard": {"level": log_level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
    }


def setup_logging() -> None:
    logging.config.dictConfig(get_logging_config())


def get_logger(name: str = "hitguard") -> logging.Logger:
    return logging.getLogger(name)


def get_log_context(
    client_id: Optional[str] = None,
    limiter: Optional[str] = None,
    key_prefix: Optional[str] = None,
    remaining: Optional[float] = None,
    request_id: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Fields for the ``extra=`` argument of a logging call, without unset ones.

    Example:
        >>> logger.debug("Hit registered", extra=get_log_context(client_id="client-1", remaining=4))
    """
    context = dict(
        client_id=client_id,
        limiter=limiter,
        key_prefix=key_prefix,
        remaining=remaining,
        request_id=request_id,
        **extra,
    )
    return {key: value for key, value in context.items() if value is not None}
