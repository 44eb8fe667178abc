"""Core primitives shared by every infraspine module: errors, logging, settings."""

from infraspine.core.errors import (
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InfraError,
    NotReadyError,
    ProviderAPIError,
    ProviderError,
    is_retryable,
)
from infraspine.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "InfraError",
    "LogContext",
    "NotReadyError",
    "ProviderAPIError",
    "ProviderError",
    "configure_logging",
    "get_logger",
    "is_retryable",
]
