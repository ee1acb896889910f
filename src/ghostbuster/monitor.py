"""
Reachability monitors for Ghostbuster.

A monitor runs cleanup commands after objects become weakly reachable or
completely unreachable, depending on the caller's preference.

Callers should keep a strong reference to a monitor so long as they want its
cleanup commands to run. A monitor that is itself reclaimed shuts down, and
its pending cleanup commands never run.

Where a monitor hands a reference back to the caller (``weak_reference`` and
``phantom_reference``), the cleanup only runs if the caller keeps that
reference alive. Dropping it drops the registration.

Each monitor is split into the public object and a core holding the table,
the channel and any workers. Nothing in the core refers back to the public
object, which lets the monitor watch its own reachability with the same
mechanism it offers to callers.
"""

import itertools
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .errors import (
    ErrorReporter,
    InvalidArgumentError,
    LogErrorReporter,
    MonitorShutdownError,
    create_cleanup_error,
    dispatch_error,
    require_argument,
    require_callable,
)
from .reclamation import (
    NotificationChannel,
    create_phantom_handle,
    create_weak_handle,
    enqueue_on_reclaim,
)
from .references import (
    PhantomReference,
    ReclaimableReference,
    ReferenceKind,
    WeakReference,
)
from .registry import RegistrationTable

logger = logging.getLogger(__name__)

_monitor_ids = itertools.count(1)


class MonitorState(Enum):
    """Monitor lifecycle states."""

    ACTIVE = "active"
    DRAINING = "draining"
    SHUT_DOWN = "shut_down"


@dataclass
class MonitorConfig:
    """Monitor configuration."""

    worker_name_prefix: str = "ghostbuster-worker"
    daemon_workers: bool = True
    shutdown_timeout: float = 5.0  # seconds to wait for each worker pool join
    reporters: List[ErrorReporter] = field(
        default_factory=lambda: [LogErrorReporter()]
    )

    def validate(self) -> None:
        """Raise InvalidArgumentError if a setting is unusable."""
        if not isinstance(self.worker_name_prefix, str) or not self.worker_name_prefix:
            raise InvalidArgumentError(
                "worker_name_prefix must be a non-empty string",
                argument="worker_name_prefix",
                value=self.worker_name_prefix,
            )
        if (
            isinstance(self.shutdown_timeout, bool)
            or not isinstance(self.shutdown_timeout, (int, float))
            or self.shutdown_timeout < 0
        ):
            raise InvalidArgumentError(
                "shutdown_timeout must be a non-negative number",
                argument="shutdown_timeout",
                value=self.shutdown_timeout,
            )
        for reporter in self.reporters:
            if not isinstance(reporter, ErrorReporter):
                raise InvalidArgumentError(
                    f"reporters must be ErrorReporter instances, got "
                    f"{type(reporter).__name__}",
                    argument="reporters",
                    value=reporter,
                )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_name_prefix": self.worker_name_prefix,
            "daemon_workers": self.daemon_workers,
            "shutdown_timeout": self.shutdown_timeout,
            "reporters": [type(reporter).__name__ for reporter in self.reporters],
        }


@dataclass
class MonitorStats:
    """Monitor statistics.

    ``cleanups_run`` counts every cleanup the monitor attempted, including
    the ones that raised. Those are also counted in ``cleanup_failures``.
    """

    name: str
    state: MonitorState
    registrations: int = 0
    cleanups_run: int = 0
    cleanup_failures: int = 0
    pending: int = 0
    workers: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "registrations": self.registrations,
            "cleanups_run": self.cleanups_run,
            "cleanup_failures": self.cleanup_failures,
            "pending": self.pending,
            "workers": self.workers,
        }


class MonitorCore:
    """Table, channel and lifecycle shared by a monitor and its workers."""

    # Cleanups run on the caller's thread here, so KeyboardInterrupt and
    # SystemExit reach the caller.
    contained_errors = (Exception,)

    def __init__(self, name: str, config: MonitorConfig):
        self.name = name
        self.config = config
        self.table = RegistrationTable()
        self.channel = NotificationChannel(name)
        self.state = MonitorState.ACTIVE
        self._lock = threading.RLock()
        self._watch_handle: Optional[WeakReference] = None
        self._stats = {
            "registrations": 0,
            "cleanups_run": 0,
            "cleanup_failures": 0,
        }

    @property
    def worker_count(self) -> int:
        return 0

    def register(
        self, reference: ReclaimableReference, cleanup: Callable[[], Any], retain: bool
    ) -> bool:
        """Record a registration. Returns False if the monitor is not active."""
        with self._lock:
            if self.state is not MonitorState.ACTIVE:
                logger.debug(
                    "Monitor %s is %s; %s registration is inert",
                    self.name,
                    self.state.value,
                    reference.kind.value,
                )
                return False
            self.table.register(reference, cleanup, retain=retain)
            enqueue_on_reclaim(reference, self.channel)
            self._stats["registrations"] += 1
            return True

    def watch(self, handle: WeakReference) -> None:
        """Shut down once the referent of ``handle`` (the monitor) is reclaimed."""
        self._watch_handle = handle
        self.table.register(handle, self._on_monitor_unreachable, retain=True)
        enqueue_on_reclaim(handle, self.channel)

    def _on_monitor_unreachable(self) -> None:
        logger.info("Monitor %s is no longer reachable, shutting down", self.name)
        self.request_shutdown()

    def run_cleanup(self, reference: ReclaimableReference) -> bool:
        """Take and run the cleanup for ``reference``.

        Returns False if there was nothing to run. Exceptions of the types in
        ``contained_errors`` raised by the cleanup are reported, never
        propagated.
        """
        cleanup = self.table.take_if_present(reference)
        if cleanup is None:
            return False

        if reference.kind is ReferenceKind.PHANTOM:
            reference.clear()

        internal = reference is self._watch_handle
        try:
            cleanup()
        except self.contained_errors as exc:
            error = create_cleanup_error(
                exc,
                cleanup,
                reference=reference,
                component=self.name,
                thread_name=threading.current_thread().name,
            )
            with self._lock:
                self._stats["cleanup_failures"] += 1
            dispatch_error(self.config.reporters, error)
        finally:
            if not internal:
                with self._lock:
                    self._stats["cleanups_run"] += 1
        return True

    def drain(self) -> int:
        """Run cleanups for every reference already on the channel."""
        ran = 0
        while True:
            reference = self.channel.poll()
            if reference is None:
                break
            if self.run_cleanup(reference):
                ran += 1
        if ran:
            logger.debug("Monitor %s drained %d cleanups", self.name, ran)
        return ran

    def request_shutdown(self) -> None:
        with self._lock:
            if self.state is not MonitorState.ACTIVE:
                return
            self.state = MonitorState.SHUT_DOWN

        dropped = self.table.invalidate_all()
        self.channel.close()
        logger.info(
            "Monitor %s shut down (%d pending cleanups dropped)", self.name, dropped
        )

    def get_stats(self) -> MonitorStats:
        with self._lock:
            pending = len(self.table)
            if self._watch_handle is not None and self._watch_handle in self.table:
                pending -= 1
            return MonitorStats(
                name=self.name,
                state=self.state,
                registrations=self._stats["registrations"],
                cleanups_run=self._stats["cleanups_run"],
                cleanup_failures=self._stats["cleanup_failures"],
                pending=pending,
                workers=self.worker_count,
            )


class ReachabilityMonitor:
    """Monitors the reachability of objects and runs cleanup commands.

    Cleanup can be requested once an object is weakly reachable (no strong
    references remain) or once it is completely unreachable. CPython
    reports both through the same reclamation event, the object's weakref
    callbacks. Either way a cleanup runs at most once, even if ``__del__``
    resurrects the object.

    The references returned by ``weak_reference`` and ``phantom_reference``
    compare equal and hash alike when they are of the same kind and point
    to the same object.
    """

    def __init__(self, core: MonitorCore):
        self._core = core
        core.watch(create_weak_handle(self))

    @staticmethod
    def _next_name(kind: str) -> str:
        return f"{kind}-{next(_monitor_ids)}"

    @property
    def name(self) -> str:
        return self._core.name

    @property
    def config(self) -> MonitorConfig:
        return self._core.config

    @property
    def state(self) -> MonitorState:
        return self._core.state

    def when_weakly_reachable(self, obj: Any, cleanup: Callable[[], Any]) -> None:
        """Run ``cleanup`` after no strong references to ``obj`` remain.

        Raises InvalidArgumentError if obj or cleanup is None.
        """
        self._register(create_weak_handle, "obj", obj, cleanup, retain=True)

    def when_unreachable(self, obj: Any, cleanup: Callable[[], Any]) -> None:
        """Run ``cleanup`` after no references of any kind to ``obj`` remain.

        Raises InvalidArgumentError if obj or cleanup is None.
        """
        self._register(create_phantom_handle, "obj", obj, cleanup, retain=True)

    def weak_reference(self, referent: Any, cleanup: Callable[[], Any]) -> WeakReference:
        """Create a weak reference to ``referent`` and register ``cleanup``.

        The cleanup runs after no strong references to the referent remain,
        provided the returned reference is still alive then.

        Raises InvalidArgumentError if referent or cleanup is None.
        """
        return self._register(
            create_weak_handle, "referent", referent, cleanup, retain=False
        )

    def phantom_reference(
        self, referent: Any, cleanup: Callable[[], Any]
    ) -> PhantomReference:
        """Create a phantom reference to ``referent`` and register ``cleanup``.

        Unlike a raw phantom handle, ``get()`` on the returned reference
        returns the referent while it is strongly reachable. The monitor
        clears the reference before running the cleanup. If the returned
        reference is dropped first, the cleanup does not run.

        Raises InvalidArgumentError if referent or cleanup is None.
        """
        return self._register(
            create_phantom_handle, "referent", referent, cleanup, retain=False
        )

    def _register(
        self,
        create_handle: Callable[[Any], ReclaimableReference],
        argument: str,
        obj: Any,
        cleanup: Callable[[], Any],
        retain: bool,
    ) -> ReclaimableReference:
        require_argument(argument, obj)
        require_callable("cleanup", cleanup)

        reference = create_handle(obj)
        self._core.register(reference, cleanup, retain)
        self._after_register()
        return reference

    def _after_register(self) -> None:
        """Hook run after every registration."""

    def request_shutdown(self) -> None:
        """Shut the monitor down. Idempotent.

        Pending cleanup commands never run after shutdown. Calling this is
        optional: a monitor that is no longer referenced shuts itself down.
        """
        self._core.request_shutdown()

    def is_shutdown(self) -> bool:
        return self._core.state is not MonitorState.ACTIVE

    def ensure_active(self) -> None:
        """Raise MonitorShutdownError unless the monitor is active."""
        state = self._core.state
        if state is not MonitorState.ACTIVE:
            raise MonitorShutdownError(
                f"Monitor {self.name} is {state.value}", state=state.value
            )

    def get_stats(self) -> MonitorStats:
        return self._core.get_stats()

    def __enter__(self) -> "ReachabilityMonitor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.request_shutdown()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.state.value}>"
