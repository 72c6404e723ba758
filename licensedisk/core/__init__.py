"""Core configuration and utilities package."""

from licensedisk.core.config import Settings, get_settings
from licensedisk.core.logging import get_logger, set_correlation_id, setup_logging
from licensedisk.core.security import (
    Operator,
    check_rate_limit,
    resolve_operator,
    verify_api_key,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    # Security
    "Operator",
    "check_rate_limit",
    "resolve_operator",
    "verify_api_key",
]
