"""
Unit tests for the reclamation primitive.
"""

import gc

import pytest

from ghostbuster.errors import InvalidArgumentError
from ghostbuster.reclamation import (
    NotificationChannel,
    clear_handle,
    create_phantom_handle,
    create_weak_handle,
    enqueue_on_reclaim,
)
from ghostbuster.references import PhantomReference, StrongReference, WeakReference


class Node:
    """Weakly referenceable test object."""

    def __init__(self):
        self.peer = None


class TestNotificationChannel:
    """Test the NotificationChannel class."""

    @pytest.fixture
    def channel(self):
        """Create a notification channel."""
        return NotificationChannel("test")

    def test_poll_empty(self, channel):
        """Test polling an empty channel."""
        assert channel.poll() is None
        assert channel.qsize() == 0
        assert not channel.closed

    def test_deposit_and_poll_fifo(self, channel):
        """Test that deposited handles come out in order."""
        first, second = object(), object()

        assert channel.deposit(first)
        assert channel.deposit(second)

        assert channel.poll() is first
        assert channel.poll() is second
        assert channel.poll() is None

    def test_remove_times_out(self, channel):
        """Test that remove returns None after its timeout."""
        assert channel.remove(timeout=0.01) is None

    def test_close_rejects_deposits(self, channel):
        """Test that a closed channel drops new handles."""
        channel.close()

        assert channel.closed
        assert not channel.deposit(object())
        assert channel.poll() is None

    def test_close_wakes_waiters_after_queued_items(self, channel):
        """Test that queued handles are received before the stop signals."""
        queued = object()
        channel.deposit(queued)

        channel.close(waiters=2)

        assert channel.remove(timeout=1.0) is queued
        assert channel.remove(timeout=1.0) is None
        assert channel.remove(timeout=1.0) is None

    def test_close_idempotent(self, channel):
        """Test that closing twice signals waiters once."""
        channel.close(waiters=1)
        channel.close(waiters=1)

        assert channel.qsize() == 1

    def test_poll_skips_stop_signals(self, channel):
        """Test that poll ignores stop signals."""
        channel.close(waiters=3)

        assert channel.poll() is None
        assert channel.qsize() == 0


class TestHandles:
    """Test handle creation and delivery."""

    def test_create_handles(self):
        """Test the handle factories."""
        node = Node()

        assert isinstance(create_weak_handle(node), WeakReference)
        assert isinstance(create_phantom_handle(node), PhantomReference)

    def test_handle_deposited_on_reclaim(self):
        """Test that a handle is deposited once its referent dies."""
        channel = NotificationChannel()
        node = Node()
        handle = create_weak_handle(node, channel)

        assert channel.poll() is None

        del node

        assert channel.poll() is handle
        assert channel.poll() is None

    def test_cyclic_referent_deposited_after_collection(self):
        """Test delivery for referents that only the cyclic collector frees."""
        channel = NotificationChannel()
        node = Node()
        node.peer = node
        handle = create_phantom_handle(node, channel)

        del node
        gc.collect()

        assert channel.poll() is handle

    def test_enqueue_on_reclaim(self):
        """Test attaching a handle to a channel after creation."""
        channel = NotificationChannel()
        node = Node()
        handle = create_weak_handle(node)

        enqueue_on_reclaim(handle, channel)
        del node

        assert handle.channel is channel
        assert channel.poll() is handle

    def test_enqueue_on_reclaim_rejects_bad_arguments(self):
        """Test argument validation of enqueue_on_reclaim."""
        channel = NotificationChannel()
        node = Node()

        with pytest.raises(InvalidArgumentError):
            enqueue_on_reclaim(None, channel)

        with pytest.raises(InvalidArgumentError):
            enqueue_on_reclaim(create_weak_handle(node), None)

        with pytest.raises(InvalidArgumentError):
            enqueue_on_reclaim(StrongReference(node), channel)

    def test_cleared_handle_not_deposited(self):
        """Test that clearing a handle detaches it."""
        channel = NotificationChannel()
        node = Node()
        handle = create_weak_handle(node, channel)

        clear_handle(handle)
        del node

        assert channel.poll() is None

    def test_cleared_handle_cannot_be_reattached(self):
        """Test that enqueueing a cleared handle has no effect."""
        channel = NotificationChannel()
        node = Node()
        handle = create_weak_handle(node)
        handle.clear()

        enqueue_on_reclaim(handle, channel)
        del node

        assert channel.poll() is None

    def test_dropped_handle_not_deposited(self):
        """Test that a handle reclaimed before its referent is never delivered."""
        channel = NotificationChannel()
        node = Node()
        handle = create_weak_handle(node, channel)

        del handle
        del node

        assert channel.poll() is None

    def test_closed_channel_drops_delivery(self):
        """Test that delivery to a closed channel is dropped."""
        channel = NotificationChannel()
        node = Node()
        handle = create_weak_handle(node, channel)

        channel.close()
        del node

        assert handle.get() is None
        assert channel.poll() is None
