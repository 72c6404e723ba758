"""
Structured logging configuration with correlation ID support.

JSON logs for production, console logs for development. Every request
carries a correlation ID, and personal data read off a license disk is
masked before any renderer sees it.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import Processor

from licensedisk.core.config import get_settings

# Correlation ID of the request being handled
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# Event keys that may carry owner data from a scanned disk
REDACTED_KEYS = frozenset({"owner_name", "owner_id_number", "raw_payload"})


def get_correlation_id() -> str:
    """Return the correlation ID bound to this context, or an empty string."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Bind a correlation ID to this context, minting a UUID when none is given."""
    cid = correlation_id or str(uuid.uuid4())
    correlation_id_var.set(cid)
    return cid


def add_correlation_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Stamp each event with the request correlation ID, if any."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def redact_owner_data(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Structlog processor that masks owner details and raw disk payloads.

    License numbers stay visible; they are needed to trace duplicate
    decisions.
    """
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def drop_color_message_key(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Drop the duplicate color_message field uvicorn attaches."""
    event_dict.pop("color_message", None)
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog and route stdlib logging through stdout.

    LOG_FORMAT=json renders one JSON object per line; text renders
    coloured console output. Chatty library loggers are held at WARNING.
    """
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    common_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_correlation_id,
        redact_owner_data,
        drop_color_message_key,
    ]

    if settings.log_format == "json":
        processors: list[Processor] = [
            *common_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *common_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    for logger_name in ["uvicorn", "uvicorn.access", "sqlalchemy.engine", "aiosqlite"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Return a structlog logger, usually named after the calling module.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("scan_parsed", license_number="ABC123GP", source="structured")
    """
    return structlog.get_logger(name)
