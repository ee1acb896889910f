"""Creation functions for monitors and strong references."""

from typing import Any, Optional

from .background import BackgroundReachabilityMonitor
from .foreground import ForegroundReachabilityMonitor
from .monitor import MonitorConfig
from .references import StrongReference


def foreground_monitor(
    config: Optional[MonitorConfig] = None,
) -> ForegroundReachabilityMonitor:
    """Create a monitor that runs cleanups on the caller's thread.

    Cleanups run when the caller registers new cleanups. Use only where the
    caller may not spawn background threads.
    """
    return ForegroundReachabilityMonitor(config)


def background_monitor(
    workers: int = 1, config: Optional[MonitorConfig] = None
) -> BackgroundReachabilityMonitor:
    """Create a monitor that runs cleanups on ``workers`` background threads.

    Raises InvalidArgumentError if workers is less than 1.
    """
    return BackgroundReachabilityMonitor(workers, config)


def strong_reference(referent: Any) -> StrongReference:
    """Create a strong reference to ``referent``.

    Equivalent to a normal object reference; useful in code that supports
    several reference strengths. Two strong references to the exact same
    object are equal and hash alike.

    Raises InvalidArgumentError if referent is None.
    """
    return StrongReference(referent)
