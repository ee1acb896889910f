"""
Reference wrappers with a declared reachability strength.

This module provides the reference objects handed out by the monitors:
- StrongReference keeps its referent alive until cleared
- WeakReference and PhantomReference are ``weakref.ref`` subclasses and do
  not keep their referent alive

All three compare and hash by ``(kind, identity token)``. A referent keeps
one token while it is alive and tokens are never reused, so a cleared or
dead reference still matches the bookkeeping it was registered under but
never a reference to a later object that happens to get the same ``id()``.

Weak and phantom references observe the same reclamation event in CPython:
the referent's weakref callbacks. The difference is in how the monitor
treats them. A phantom reference is cleared by the monitor before its
cleanup runs, and its ``get()`` is only meant for code that still holds the
referent strongly elsewhere.
"""

import itertools
import threading
import weakref
from collections import deque
from enum import Enum
from typing import Any, Dict, Optional, Set

from .errors import InvalidArgumentError


class ReferenceKind(Enum):
    """Reachability strength of a reference."""

    STRONG = "strong"
    WEAK = "weak"
    PHANTOM = "phantom"


class _Identity:
    """Identity token of one referent.

    Tokens are never reused, unlike ``id()`` values, so a reference that
    outlives its referent never matches a reference to a later object
    allocated at the same address.
    """

    __slots__ = ("token", "referent_ref", "holders")

    def __init__(self, token: int, key: int, referent: Any):
        self.token = token
        self.holders: Set[weakref.ref] = set()
        try:
            self.referent_ref: Optional[weakref.ref] = weakref.ref(
                referent, lambda dead, key=key: _pending_releases.append((key, dead))
            )
        except TypeError:
            # Not weakly referenceable: alive exactly while an uncleared
            # strong reference holds it.
            self.referent_ref = None

    def refers_to(self, referent: Any) -> bool:
        if self.referent_ref is not None:
            return self.referent_ref() is referent
        for holder_ref in list(self.holders):
            holder = holder_ref()
            if holder is not None and holder._referent is referent:
                return True
        return False

    def is_released(self) -> bool:
        if self.referent_ref is not None:
            return self.referent_ref() is None
        return not any(holder_ref() is not None for holder_ref in self.holders)


_identities: Dict[int, _Identity] = {}
_identity_tokens = itertools.count(1)
_identity_lock = threading.RLock()
# Filled from weakref callbacks; applied under _identity_lock.
_pending_releases: deque = deque()


def _apply_pending_releases() -> None:
    while _pending_releases:
        key, dead = _pending_releases.popleft()
        identity = _identities.get(key)
        if identity is None:
            continue
        identity.holders.discard(dead)
        if identity.referent_ref is dead or (
            identity.referent_ref is None and identity.is_released()
        ):
            del _identities[key]


def _identity_of(referent: Any, holder: Optional["StrongReference"] = None) -> int:
    """Return the identity token of ``referent``.

    References created while the referent is alive share its token. Passing
    a strong ``holder`` keeps the token of a referent that cannot be weakly
    referenced valid for as long as the holder is not cleared.
    """
    key = id(referent)
    with _identity_lock:
        _apply_pending_releases()
        identity = _identities.get(key)
        if identity is None or not identity.refers_to(referent):
            identity = _Identity(next(_identity_tokens), key, referent)
            _identities[key] = identity
        if holder is not None and identity.referent_ref is None:
            identity.holders.add(
                weakref.ref(
                    holder, lambda dead, key=key: _pending_releases.append((key, dead))
                )
            )
        return identity.token


class Reference:
    """Common interface of strong, weak and phantom references."""

    __slots__ = ()

    kind: ReferenceKind

    def get(self) -> Optional[Any]:
        """Return the referent, or None if it is gone or was cleared."""
        raise NotImplementedError

    def clear(self) -> None:
        """Clear the reference. Idempotent."""
        raise NotImplementedError

    def is_cleared(self) -> bool:
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Reference):
            return NotImplemented
        return self.kind is other.kind and self._identity == other._identity

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self) -> int:
        return hash((self.kind, self._identity))

    def __repr__(self) -> str:
        referent = self.get()
        if referent is None:
            state = "cleared" if self.is_cleared() else "dead"
            return f"<{type(self).__name__} at {id(self):#x}; {state}>"
        return (
            f"<{type(self).__name__} at {id(self):#x}; "
            f"to '{type(referent).__name__}' at {id(referent):#x}>"
        )


class StrongReference(Reference):
    """A reference that keeps its referent alive until cleared.

    Useful in code that handles references of different strengths
    uniformly, for example as keys in a collection that may also contain
    weak references.
    """

    __slots__ = ("_referent", "_identity", "_cleared", "__weakref__")

    kind = ReferenceKind.STRONG

    def __init__(self, referent: Any):
        if referent is None:
            raise InvalidArgumentError(
                "referent must not be None", argument="referent"
            )
        self._referent = referent
        self._identity = _identity_of(referent, holder=self)
        self._cleared = False

    def get(self) -> Optional[Any]:
        return self._referent

    def __call__(self) -> Optional[Any]:
        return self._referent

    def clear(self) -> None:
        # Dropping the owning handle makes the referent collectable.
        self._referent = None
        self._cleared = True

    def is_cleared(self) -> bool:
        return self._cleared


def _deliver(reference: "ReclaimableReference") -> None:
    """Weakref callback: deposit the reference on its channel.

    Runs on whichever thread released the referent, possibly in the middle
    of the cyclic collector, so it only touches the channel.
    """
    channel = reference._channel
    if channel is not None and not reference._cleared:
        channel.deposit(reference)


class ReclaimableReference(Reference, weakref.ref):
    """Base for references that do not keep their referent alive.

    When the referent is reclaimed the reference deposits itself on the
    notification channel it was attached to, unless it was cleared first.
    """

    kind = ReferenceKind.WEAK

    def __new__(cls, referent: Any, channel: Any = None):
        if referent is None:
            raise InvalidArgumentError(
                "referent must not be None", argument="referent"
            )
        try:
            return super().__new__(cls, referent, _deliver)
        except TypeError as exc:
            raise InvalidArgumentError(
                f"cannot create a {cls.kind.value} reference to "
                f"'{type(referent).__name__}' object",
                argument="referent",
                value=referent,
                cause=exc,
            ) from exc

    def __init__(self, referent: Any, channel: Any = None):
        super().__init__(referent, _deliver)
        self._identity = _identity_of(referent)
        self._channel = channel
        self._cleared = False

    @property
    def channel(self) -> Any:
        """The channel this reference is deposited on when reclaimed."""
        return self._channel

    def enqueue_on(self, channel: Any) -> None:
        """Attach this reference to ``channel``."""
        if self._cleared:
            return
        self._channel = channel

    def get(self) -> Optional[Any]:
        if self._cleared:
            return None
        return weakref.ref.__call__(self)

    def __call__(self) -> Optional[Any]:
        return self.get()

    def clear(self) -> None:
        # A cleared reference is never deposited, even if the referent
        # dies later.
        self._cleared = True
        self._channel = None

    def is_cleared(self) -> bool:
        return self._cleared

    def is_alive(self) -> bool:
        """Whether the referent has not been reclaimed yet."""
        return weakref.ref.__call__(self) is not None


class WeakReference(ReclaimableReference):
    """A weak reference.

    ``get()`` returns the referent until no strong references to it
    remain, then None.
    """

    kind = ReferenceKind.WEAK


class PhantomReference(ReclaimableReference):
    """A phantom reference that can still be dereferenced.

    Unlike a raw phantom handle, ``get()`` returns the referent so long as
    it is strongly reachable. Monitors clear phantom references before
    running their cleanup, so ``get()`` returns None from then on.
    """

    kind = ReferenceKind.PHANTOM
