"""Cleanup failure telemetry for Ghostbuster.

Monitors never propagate exceptions raised by cleanup commands. Instead each
failure is wrapped in a CleanupError and handed to the monitor's reporters.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .exceptions import ErrorSeverity, GhostbusterError


@dataclass
class FailureMetrics:
    """Cleanup failure metrics."""

    total_failures: int = 0
    failures_by_type: Dict[str, int] = field(default_factory=dict)
    failures_by_severity: Dict[str, int] = field(default_factory=dict)
    first_failure_at: Optional[float] = None
    last_failure_at: Optional[float] = None

    def record(self, error: GhostbusterError) -> None:
        """Count a failure."""
        self.total_failures += 1

        cause_type = (
            type(error.cause).__name__ if error.cause else type(error).__name__
        )
        self.failures_by_type[cause_type] = (
            self.failures_by_type.get(cause_type, 0) + 1
        )
        self.failures_by_severity[error.severity.value] = (
            self.failures_by_severity.get(error.severity.value, 0) + 1
        )

        if self.first_failure_at is None:
            self.first_failure_at = error.timestamp
        self.last_failure_at = error.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_failures": self.total_failures,
            "failures_by_type": dict(self.failures_by_type),
            "failures_by_severity": dict(self.failures_by_severity),
            "first_failure_at": self.first_failure_at,
            "last_failure_at": self.last_failure_at,
        }


class ErrorReporter(ABC):
    """Abstract error reporter."""

    @abstractmethod
    def report_error(self, error: GhostbusterError) -> None:
        """Report an error."""
        pass


class LogErrorReporter(ErrorReporter):
    """Log-based error reporter."""

    def __init__(self, logger_name: str = "ghostbuster.cleanup"):
        self.logger = logging.getLogger(logger_name)

    def report_error(self, error: GhostbusterError) -> None:
        """Report error to logs."""
        exc_info = None
        if error.cause is not None:
            exc_info = (type(error.cause), error.cause, error.cause.__traceback__)

        if error.severity == ErrorSeverity.CRITICAL:
            self.logger.critical("%s", error, exc_info=exc_info)
        elif error.severity == ErrorSeverity.HIGH:
            self.logger.error("%s", error, exc_info=exc_info)
        elif error.severity == ErrorSeverity.MEDIUM:
            self.logger.warning("%s", error, exc_info=exc_info)
        else:
            self.logger.info("%s", error)


class MemoryErrorReporter(ErrorReporter):
    """Keeps the most recent errors and running metrics in memory."""

    def __init__(self, max_errors: int = 1000):
        self.max_errors = max_errors
        self._errors: deque = deque(maxlen=max_errors)
        self._metrics = FailureMetrics()
        self._lock = threading.RLock()

    def report_error(self, error: GhostbusterError) -> None:
        with self._lock:
            self._errors.append(error)
            self._metrics.record(error)

    def get_errors(self, since: Optional[float] = None) -> List[GhostbusterError]:
        """Get recorded errors, optionally only those newer than ``since``."""
        with self._lock:
            if since is None:
                return list(self._errors)
            return [error for error in self._errors if error.timestamp >= since]

    def get_metrics(self) -> FailureMetrics:
        with self._lock:
            return FailureMetrics(
                total_failures=self._metrics.total_failures,
                failures_by_type=dict(self._metrics.failures_by_type),
                failures_by_severity=dict(self._metrics.failures_by_severity),
                first_failure_at=self._metrics.first_failure_at,
                last_failure_at=self._metrics.last_failure_at,
            )

    def clear(self) -> None:
        with self._lock:
            self._errors.clear()
            self._metrics = FailureMetrics()

    def __len__(self) -> int:
        with self._lock:
            return len(self._errors)


def dispatch_error(reporters: List[ErrorReporter], error: GhostbusterError) -> None:
    """Hand ``error`` to every reporter.

    A reporter that raises is logged and skipped so the remaining reporters
    still see the error.
    """
    for reporter in reporters:
        try:
            reporter.report_error(error)
        except Exception:
            logging.getLogger(__name__).exception(
                "Error reporter %r failed at %.3f", reporter, time.time()
            )
