"""
Registration table for Ghostbuster.

Maps in-flight references to their cleanup commands. Entries are keyed by
the identity of the reference object, not by reference equality, so several
registrations against the same referent stay independent.
"""

import logging
import threading
import time
import weakref
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .errors import require_argument, require_callable
from .references import Reference

logger = logging.getLogger(__name__)


@dataclass
class RegistrationEntry:
    """A reference and the cleanup command registered for it.

    Retained entries hold their reference strongly. The others hold it
    through a weakref, so a reference dropped by its caller is evicted and
    its cleanup never runs.
    """

    key: int
    cleanup: Callable[[], Any]
    retained: bool
    reference: Optional[Reference] = None
    reference_ref: Optional[weakref.ref] = None
    registered_at: float = field(default_factory=time.time)

    def get_reference(self) -> Optional[Reference]:
        if self.retained:
            return self.reference
        return self.reference_ref() if self.reference_ref is not None else None


class RegistrationTable:
    """Thread-safe map from reference to cleanup command."""

    def __init__(self):
        self._entries: Dict[int, RegistrationEntry] = {}
        self._lock = threading.RLock()
        # Filled from weakref callbacks, which may run while _lock is held
        # on the same thread; drained under the lock by every operation.
        self._pending_evictions: deque = deque()

    def register(
        self,
        reference: Reference,
        cleanup: Callable[[], Any],
        retain: bool = True,
    ) -> RegistrationEntry:
        """Register ``cleanup`` to run when ``reference`` is delivered."""
        require_argument("reference", reference)
        require_callable("cleanup", cleanup)

        key = id(reference)
        if retain:
            entry = RegistrationEntry(
                key=key, cleanup=cleanup, retained=True, reference=reference
            )
        else:
            pending = self._pending_evictions

            def evict(dead_ref: weakref.ref, key: int = key) -> None:
                pending.append((key, dead_ref))

            entry = RegistrationEntry(
                key=key,
                cleanup=cleanup,
                retained=False,
                reference_ref=weakref.ref(reference, evict),
            )

        with self._lock:
            self._apply_pending_evictions()
            self._entries[key] = entry

        # Log arguments are kept by captured records; never pass the reference.
        logger.debug(
            "Registered %s reference %#x (retained=%s)",
            reference.kind.value,
            key,
            retain,
        )
        return entry

    def take_if_present(self, reference: Reference) -> Optional[Callable[[], Any]]:
        """Remove and return the cleanup for ``reference``, if any.

        Returns None when the entry was already taken or the table was
        invalidated, which is how late notifications after shutdown resolve.
        """
        if reference is None:
            return None

        with self._lock:
            self._apply_pending_evictions()
            entry = self._entries.get(id(reference))
            if entry is None or entry.get_reference() is not reference:
                return None
            del self._entries[entry.key]
            return entry.cleanup

    def invalidate_all(self) -> int:
        """Drop every entry without running it. Returns how many were dropped."""
        with self._lock:
            self._pending_evictions.clear()
            count = len(self._entries)
            self._entries.clear()

        if count:
            logger.debug("Invalidated %d pending registrations", count)
        return count

    def _apply_pending_evictions(self) -> None:
        while self._pending_evictions:
            key, dead_ref = self._pending_evictions.popleft()
            entry = self._entries.get(key)
            # The key may already belong to a newer reference.
            if entry is not None and entry.reference_ref is dead_ref:
                del self._entries[key]
                logger.debug("Evicted registration of a dropped reference")

    def __contains__(self, reference: object) -> bool:
        with self._lock:
            self._apply_pending_evictions()
            entry = self._entries.get(id(reference))
            return entry is not None and entry.get_reference() is reference

    def __len__(self) -> int:
        with self._lock:
            self._apply_pending_evictions()
            return len(self._entries)
