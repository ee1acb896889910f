"""Ghostbuster Error Handling System.

This module provides the exception hierarchy raised by the reachability
monitors and the telemetry used to report failing cleanup commands.
"""

from .exceptions import (
    CleanupError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    GhostbusterError,
    InvalidArgumentError,
    MonitorShutdownError,
    create_cleanup_error,
    require_argument,
    require_callable,
)
from .telemetry import (
    ErrorReporter,
    FailureMetrics,
    LogErrorReporter,
    MemoryErrorReporter,
    dispatch_error,
)

__all__ = [
    # Exceptions
    "GhostbusterError",
    "InvalidArgumentError",
    "CleanupError",
    "MonitorShutdownError",
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorContext",
    "create_cleanup_error",
    "require_argument",
    "require_callable",
    # Telemetry
    "ErrorReporter",
    "LogErrorReporter",
    "MemoryErrorReporter",
    "FailureMetrics",
    "dispatch_error",
]
