"""Exception hierarchy for Ghostbuster.

This module defines the exceptions raised by the reachability monitors and
reference wrappers, and the error raised on behalf of cleanup commands.
"""

import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories."""

    VALIDATION = "validation"
    CLEANUP = "cleanup"
    LIFECYCLE = "lifecycle"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


@dataclass
class ErrorContext:
    """Context information for an error."""

    timestamp: float = field(default_factory=time.time)
    component: Optional[str] = None
    operation: Optional[str] = None
    thread_name: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "timestamp": self.timestamp,
            "component": self.component,
            "operation": self.operation,
            "thread_name": self.thread_name,
            "metadata": self.metadata,
        }


class GhostbusterError(Exception):
    """Base exception for all Ghostbuster errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.category = category
        self.context = context or ErrorContext()
        self.cause = cause
        self.metadata = metadata or {}
        self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context.to_dict(),
            "cause": repr(self.cause) if self.cause else None,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]

        if self.error_code:
            parts.append(f"Code: {self.error_code}")

        if self.severity != ErrorSeverity.MEDIUM:
            parts.append(f"Severity: {self.severity.value}")

        if self.category != ErrorCategory.SYSTEM:
            parts.append(f"Category: {self.category.value}")

        return " | ".join(parts)


class InvalidArgumentError(GhostbusterError, ValueError):
    """An absent or unusable argument was passed to a public operation."""

    def __init__(
        self,
        message: str,
        argument: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "invalid_argument")
        super().__init__(message, category=ErrorCategory.VALIDATION, **kwargs)
        self.argument = argument
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "argument": self.argument,
                "value": repr(self.value) if self.value is not None else None,
            }
        )
        return data


class CleanupError(GhostbusterError):
    """A cleanup command raised while it was being run by a monitor.

    Cleanup errors are never raised out of a drain. Monitors build one per
    failure and hand it to their error reporters.
    """

    def __init__(
        self,
        message: str,
        cleanup: Optional[Callable[[], Any]] = None,
        reference: Optional[Any] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", "cleanup_failure")
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        super().__init__(message, category=ErrorCategory.CLEANUP, **kwargs)
        self.cleanup = cleanup
        self.reference = reference
        self.traceback = (
            "".join(
                traceback.format_exception(
                    type(self.cause), self.cause, self.cause.__traceback__
                )
            )
            if self.cause is not None
            else None
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "cleanup": repr(self.cleanup),
                "reference": repr(self.reference),
                "traceback": self.traceback,
            }
        )
        return data


class MonitorShutdownError(GhostbusterError):
    """An operation required an active monitor but it has shut down."""

    def __init__(self, message: str, state: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "monitor_shut_down")
        super().__init__(message, category=ErrorCategory.LIFECYCLE, **kwargs)
        self.state = state

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"state": self.state})
        return data


def require_argument(name: str, value: Any) -> Any:
    """Return ``value`` or raise InvalidArgumentError if it is None."""
    if value is None:
        raise InvalidArgumentError(f"{name} must not be None", argument=name)
    return value


def require_callable(name: str, value: Any) -> Callable[[], Any]:
    """Return ``value`` if it is callable, else raise InvalidArgumentError."""
    require_argument(name, value)
    if not callable(value):
        raise InvalidArgumentError(
            f"{name} must be callable, got {type(value).__name__}",
            argument=name,
            value=value,
        )
    return value


def create_cleanup_error(
    cause: BaseException,
    cleanup: Callable[[], Any],
    reference: Any = None,
    component: Optional[str] = None,
    thread_name: Optional[str] = None,
) -> CleanupError:
    """Create a cleanup error for an exception raised by ``cleanup``."""
    message = f"Cleanup {cleanup!r} raised {type(cause).__name__}: {cause}"
    context = ErrorContext(
        component=component, operation="cleanup", thread_name=thread_name
    )
    return CleanupError(
        message, cleanup=cleanup, reference=reference, cause=cause, context=context
    )
