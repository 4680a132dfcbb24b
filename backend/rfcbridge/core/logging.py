import logging
import sys
from typing import Any, Optional
import structlog
from rfcbridge.core.config import settings

_SECRET_KEYS = {"passwd", "password", "PASSWD", "SAP_RFC_PASSWD", "SAP_ODATA_PASSWORD"}


def _redact_secrets(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Mask credential fields that slip into log events."""
    for key in _SECRET_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structured logging for the toolkit."""

    log_level = (level or settings.LOG_LEVEL).upper()

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level),
    )

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            # Add timestamp
            structlog.processors.TimeStamper(fmt="ISO"),
            # Add log level
            structlog.processors.add_log_level,
            structlog.stdlib.add_logger_name,
            _redact_secrets,
            structlog.processors.format_exc_info,
            # JSON formatting for structured logs
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
