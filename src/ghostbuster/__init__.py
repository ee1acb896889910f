"""Ghostbuster: cleanup commands driven by object reachability.

This package lets callers attach cleanup commands to arbitrary objects. A
command runs once its object is no longer strongly reachable, either on the
caller's own thread (foreground monitor) or on a pool of background workers
(background monitor).
"""

import logging

from .background import BackgroundReachabilityMonitor
from .collector import CollectionResult, collect_until, force_collection
from .errors import (
    CleanupError,
    GhostbusterError,
    InvalidArgumentError,
    MonitorShutdownError,
)
from .factory import background_monitor, foreground_monitor, strong_reference
from .foreground import ForegroundReachabilityMonitor
from .monitor import MonitorConfig, MonitorState, MonitorStats, ReachabilityMonitor
from .references import (
    PhantomReference,
    Reference,
    ReferenceKind,
    StrongReference,
    WeakReference,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "1.0.0"

__all__ = [
    # Factory
    "foreground_monitor",
    "background_monitor",
    "strong_reference",
    # Monitors
    "ReachabilityMonitor",
    "ForegroundReachabilityMonitor",
    "BackgroundReachabilityMonitor",
    "MonitorConfig",
    "MonitorState",
    "MonitorStats",
    # References
    "Reference",
    "ReferenceKind",
    "StrongReference",
    "WeakReference",
    "PhantomReference",
    # Errors
    "GhostbusterError",
    "InvalidArgumentError",
    "CleanupError",
    "MonitorShutdownError",
    # Collector
    "CollectionResult",
    "force_collection",
    "collect_until",
]
