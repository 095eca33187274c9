"""
Logging configuration for tickstream.

structlog renders one JSON object per line on stderr. Runtime modules log
through ``logging.getLogger(__name__)``; :func:`configure_logging` installs
the stdlib handler those records go to, so both end up on the same stream.
"""

import logging
import re
import sys
from typing import Any

import structlog

from .settings import settings

# Field names whose values are never logged.
_SECRET_KEY_PARTS = ("token", "password", "secret", "api_key", "authorization", "cookie")

# ``name=value`` pairs inside query strings and URLs.
_SECRET_PARAM = re.compile(r"\b(token|password|secret|api_key)=[^&\s]+", re.IGNORECASE)
_URL_CREDENTIALS = re.compile(r"://[^:/@\s]+:[^@\s]+@")


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        value = _SECRET_PARAM.sub(lambda m: f"{m.group(1)}=***", value)
        return _URL_CREDENTIALS.sub("://***@", value)
    if isinstance(value, dict):
        return {k: _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


def redact_secrets(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor hiding credentials in request logs."""
    for key, value in event_dict.items():
        if any(part in key.lower() for part in _SECRET_KEY_PARTS):
            event_dict[key] = "***REDACTED***"
        else:
            event_dict[key] = _scrub(value)
    return event_dict


def configure_logging(level: str | None = None) -> None:
    """Configure stdlib logging and structlog for JSON output at ``level``."""
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            redact_secrets,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a structlog logger bound with the service name and environment."""
    return structlog.get_logger(name).bind(service="tickstream", env=settings.env)
