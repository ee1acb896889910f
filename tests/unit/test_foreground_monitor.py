"""
Unit tests for the foreground reachability monitor.
"""

import sys
import threading
from unittest.mock import Mock

import pytest

from ghostbuster import foreground_monitor
from ghostbuster.collector import force_collection
from ghostbuster.errors import (
    CleanupError,
    InvalidArgumentError,
    MemoryErrorReporter,
    MonitorShutdownError,
)
from ghostbuster.foreground import ForegroundReachabilityMonitor
from ghostbuster.monitor import MonitorConfig, MonitorState
from ghostbuster.references import PhantomReference, WeakReference


class Resource:
    """Weakly referenceable test object."""

    def __init__(self):
        self.peer = None


class TestForegroundReachabilityMonitor:
    """Test the ForegroundReachabilityMonitor class."""

    @pytest.fixture
    def reporter(self):
        """Create an in-memory error reporter."""
        return MemoryErrorReporter()

    @pytest.fixture
    def monitor(self, reporter):
        """Create a foreground monitor reporting to memory."""
        monitor = foreground_monitor(MonitorConfig(reporters=[reporter]))
        yield monitor
        monitor.request_shutdown()

    def test_factory_creates_foreground_monitor(self, monitor):
        """Test the foreground_monitor factory."""
        assert isinstance(monitor, ForegroundReachabilityMonitor)
        assert monitor.state is MonitorState.ACTIVE
        assert monitor.name.startswith("foreground-")
        assert not monitor.is_shutdown()

    def test_when_weakly_reachable_runs_on_next_registration(self, monitor):
        """Test that cleanup runs during the next registration after reclaim."""
        resource = Resource()
        cleanup = Mock()
        monitor.when_weakly_reachable(resource, cleanup)

        del resource
        cleanup.assert_not_called()

        keeper = Resource()
        monitor.when_weakly_reachable(keeper, Mock())

        cleanup.assert_called_once_with()

    def test_when_unreachable_runs_on_drain(self, monitor):
        """Test that cleanup runs on an explicit drain."""
        resource = Resource()
        cleanup = Mock()
        monitor.when_unreachable(resource, cleanup)

        del resource

        assert monitor.drain() == 1
        assert monitor.drain() == 0
        cleanup.assert_called_once_with()

    def test_cleanup_not_run_while_reachable(self, monitor):
        """Test that nothing runs while the object is strongly reachable."""
        resource = Resource()
        cleanup = Mock()
        monitor.when_weakly_reachable(resource, cleanup)

        force_collection()

        assert monitor.drain() == 0
        cleanup.assert_not_called()
        assert monitor.get_stats().pending == 1

    def test_cyclic_object_cleanup(self, monitor):
        """Test cleanup of an object that only the cyclic collector frees."""
        resource = Resource()
        resource.peer = resource
        cleanup = Mock()
        monitor.when_unreachable(resource, cleanup)

        del resource
        force_collection()
        monitor.drain()

        cleanup.assert_called_once_with()

    def test_weak_reference(self, monitor):
        """Test that weak_reference returns a live weak reference."""
        resource = Resource()
        cleanup = Mock()

        reference = monitor.weak_reference(resource, cleanup)

        assert isinstance(reference, WeakReference)
        assert reference.get() is resource

        del resource
        monitor.drain()

        cleanup.assert_called_once_with()
        assert reference.get() is None

    def test_dropped_weak_reference_never_runs(self, monitor):
        """Test that dropping the returned reference drops the registration."""
        resource = Resource()
        cleanup = Mock()
        reference = monitor.weak_reference(resource, cleanup)

        del reference
        assert monitor.get_stats().pending == 0

        del resource
        monitor.drain()

        cleanup.assert_not_called()

    def test_phantom_reference_get(self, monitor):
        """Test that a phantom reference is readable until its cleanup runs."""
        resource = Resource()
        observed = []
        holder = {}

        def cleanup():
            observed.append(holder["reference"].get())
            observed.append(holder["reference"].is_cleared())

        holder["reference"] = monitor.phantom_reference(resource, cleanup)

        assert isinstance(holder["reference"], PhantomReference)
        assert holder["reference"].get() is resource

        del resource
        monitor.drain()

        assert observed == [None, True]

    def test_same_object_registered_twice(self, monitor):
        """Test that two registrations on one object both run."""
        resource = Resource()
        first, second = Mock(), Mock()
        monitor.when_weakly_reachable(resource, first)
        monitor.when_unreachable(resource, second)

        del resource
        monitor.drain()

        first.assert_called_once_with()
        second.assert_called_once_with()

    @pytest.mark.parametrize(
        "operation",
        [
            "when_weakly_reachable",
            "when_unreachable",
            "weak_reference",
            "phantom_reference",
        ],
    )
    def test_none_arguments_rejected(self, monitor, operation):
        """Test that None arguments raise without creating entries."""
        register = getattr(monitor, operation)

        with pytest.raises(InvalidArgumentError):
            register(None, Mock())

        with pytest.raises(InvalidArgumentError):
            register(Resource(), None)

        stats = monitor.get_stats()
        assert stats.registrations == 0
        assert stats.pending == 0

    def test_non_weakrefable_object_rejected(self, monitor):
        """Test that objects without weakref support are rejected."""
        with pytest.raises(InvalidArgumentError):
            monitor.when_weakly_reachable(42, Mock())

        assert monitor.get_stats().pending == 0

    def test_failing_cleanup_reported(self, monitor, reporter):
        """Test that a failing cleanup is reported and others still run."""
        failing = Mock(side_effect=RuntimeError("boom"))
        succeeding = Mock()
        first, second = Resource(), Resource()
        monitor.when_weakly_reachable(first, failing)
        monitor.when_weakly_reachable(second, succeeding)

        del first, second
        ran = monitor.drain()

        assert ran == 2
        failing.assert_called_once_with()
        succeeding.assert_called_once_with()

        errors = reporter.get_errors()
        assert len(errors) == 1
        assert isinstance(errors[0], CleanupError)
        assert isinstance(errors[0].cause, RuntimeError)
        assert errors[0].cleanup is failing
        assert errors[0].context.component == monitor.name

        stats = monitor.get_stats()
        assert stats.cleanups_run == 2
        assert stats.cleanup_failures == 1

    def test_system_exit_reaches_caller(self, monitor, reporter):
        """Test that SystemExit from a cleanup reaches the caller."""
        resource = Resource()
        monitor.when_weakly_reachable(resource, lambda: sys.exit(3))
        del resource

        with pytest.raises(SystemExit):
            monitor.drain()

        assert len(reporter) == 0
        assert monitor.get_stats().cleanups_run == 1
        assert monitor.drain() == 0

    def test_failing_cleanup_not_raised_from_registration(self, monitor):
        """Test that registration never raises a cleanup's exception."""
        resource = Resource()
        monitor.when_weakly_reachable(resource, Mock(side_effect=ValueError("x")))
        del resource

        monitor.when_weakly_reachable(Resource(), Mock())

    def test_cleanup_may_register(self, monitor):
        """Test that a cleanup can register further cleanups."""
        keeper = Resource()
        nested = Mock()

        def cleanup():
            monitor.when_weakly_reachable(keeper, nested)

        resource = Resource()
        monitor.when_weakly_reachable(resource, cleanup)
        del resource
        monitor.drain()

        assert monitor.get_stats().pending == 1
        nested.assert_not_called()

    def test_request_shutdown_prevents_cleanup(self, monitor):
        """Test that cleanups never run after shutdown."""
        resource = Resource()
        cleanup = Mock()
        monitor.when_weakly_reachable(resource, cleanup)

        monitor.request_shutdown()
        del resource

        assert monitor.drain() == 0
        cleanup.assert_not_called()
        assert monitor.state is MonitorState.SHUT_DOWN

    def test_request_shutdown_idempotent(self, monitor):
        """Test that shutting down twice behaves like once."""
        monitor.request_shutdown()
        monitor.request_shutdown()

        assert monitor.is_shutdown()
        assert monitor.get_stats().pending == 0

    def test_registration_after_shutdown_is_inert(self, monitor):
        """Test that late registrations are accepted but never run."""
        monitor.request_shutdown()

        resource = Resource()
        cleanup = Mock()
        reference = monitor.weak_reference(resource, cleanup)
        monitor.when_weakly_reachable(resource, cleanup)

        assert reference.get() is resource

        del resource
        monitor.drain()

        cleanup.assert_not_called()
        stats = monitor.get_stats()
        assert stats.registrations == 0
        assert stats.pending == 0

    def test_registration_after_shutdown_still_validates(self, monitor):
        """Test that late registrations still reject None arguments."""
        monitor.request_shutdown()

        with pytest.raises(InvalidArgumentError):
            monitor.when_unreachable(None, Mock())

    def test_ensure_active(self, monitor):
        """Test ensure_active before and after shutdown."""
        monitor.ensure_active()
        monitor.request_shutdown()

        with pytest.raises(MonitorShutdownError) as exc_info:
            monitor.ensure_active()

        assert exc_info.value.state == "shut_down"

    def test_context_manager(self, reporter):
        """Test that leaving the context shuts the monitor down."""
        with foreground_monitor(MonitorConfig(reporters=[reporter])) as monitor:
            assert not monitor.is_shutdown()

        assert monitor.is_shutdown()

    def test_runs_on_caller_thread(self, monitor):
        """Test that cleanups run on the registering thread."""
        threads = []
        resource = Resource()
        monitor.when_weakly_reachable(
            resource, lambda: threads.append(threading.current_thread())
        )
        del resource

        monitor.when_weakly_reachable(Resource(), Mock())

        assert threads == [threading.current_thread()]

    def test_stats(self, monitor):
        """Test monitor statistics."""
        keeper = Resource()
        monitor.when_weakly_reachable(keeper, Mock())
        resource = Resource()
        monitor.when_unreachable(resource, Mock())
        del resource
        monitor.drain()

        stats = monitor.get_stats()

        assert stats.registrations == 2
        assert stats.cleanups_run == 1
        assert stats.pending == 1
        assert stats.workers == 0
        assert stats.to_dict()["state"] == "active"

    def test_invalid_config_rejected(self):
        """Test that a bad configuration is rejected."""
        with pytest.raises(InvalidArgumentError):
            foreground_monitor(MonitorConfig(shutdown_timeout=-1))
