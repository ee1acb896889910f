"""Reclamation primitive for Ghostbuster.

This module is the boundary to the interpreter's reclamation machinery.
Handles are weak or phantom references; the interpreter reports a reclaimed
referent through the handle's weakref callback, which deposits the handle on
the notification channel it was attached to.

Delivery order across handles is unspecified, delivery is not timely, and
nothing is delivered if the process exits first.
"""

import logging
import queue
from typing import Any, Optional

from .errors import InvalidArgumentError, require_argument
from .references import PhantomReference, ReclaimableReference, WeakReference

logger = logging.getLogger(__name__)

# Wakes one blocked consumer when a channel is closed.
_STOP = object()


class NotificationChannel:
    """Queue of handles whose referents have been reclaimed.

    Backed by ``queue.SimpleQueue``, whose ``put`` is reentrant and may be
    called from weakref callbacks that fire while the depositing thread
    already holds other locks.
    """

    def __init__(self, name: str = "notifications"):
        self.name = name
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deposit(self, handle: ReclaimableReference) -> bool:
        """Put a handle on the channel. Returns False once closed."""
        if self._closed:
            return False
        self._queue.put(handle)
        return True

    def poll(self) -> Optional[ReclaimableReference]:
        """Take the next handle without blocking, or None if there is none."""
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return None
            if item is not _STOP:
                return item

    def remove(self, timeout: Optional[float] = None) -> Optional[ReclaimableReference]:
        """Block until a handle is available.

        Returns None when the wait times out or when a stop signal from
        ``close`` is received.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _STOP:
            return None
        return item

    def close(self, waiters: int = 0) -> None:
        """Stop accepting handles and wake ``waiters`` blocked consumers.

        Handles deposited before the call stay ahead of the stop signals,
        so consumers drain them before they stop.
        """
        if self._closed:
            return
        self._closed = True
        for _ in range(waiters):
            self._queue.put(_STOP)
        logger.debug("Closed channel %s (%d waiters signalled)", self.name, waiters)

    def qsize(self) -> int:
        """Approximate number of queued items."""
        return self._queue.qsize()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<NotificationChannel {self.name!r} {state}, ~{self.qsize()} queued>"


def create_weak_handle(
    target: Any, channel: Optional[NotificationChannel] = None
) -> WeakReference:
    """Create a handle that does not keep ``target`` alive."""
    return WeakReference(target, channel)


def create_phantom_handle(
    target: Any, channel: Optional[NotificationChannel] = None
) -> PhantomReference:
    """Create a phantom handle to ``target``.

    The handle is cleared by its monitor before the cleanup runs.
    """
    return PhantomReference(target, channel)


def enqueue_on_reclaim(
    handle: ReclaimableReference, channel: NotificationChannel
) -> None:
    """Deposit ``handle`` on ``channel`` once its referent is reclaimed."""
    require_argument("handle", handle)
    require_argument("channel", channel)
    if not isinstance(handle, ReclaimableReference):
        raise InvalidArgumentError(
            f"cannot enqueue a {type(handle).__name__}",
            argument="handle",
            value=handle,
        )
    handle.enqueue_on(channel)


def clear_handle(handle: ReclaimableReference) -> None:
    """Detach ``handle`` so it is never deposited."""
    require_argument("handle", handle)
    handle.clear()
