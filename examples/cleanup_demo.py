#!/usr/bin/env python3
"""
Ghostbuster Cleanup Demo

This script demonstrates the core functionality of Ghostbuster:
- Running cleanups on background workers
- Running cleanups on the caller's thread
- Weak and phantom references with attached cleanups
- Cleanup failure reporting
"""

import logging
import threading

from ghostbuster import background_monitor, foreground_monitor
from ghostbuster.collector import collect_until, get_collector_stats
from ghostbuster.errors import MemoryErrorReporter
from ghostbuster.monitor import MonitorConfig

logger = logging.getLogger(__name__)


class TempFile:
    """Stand-in for a resource whose release must be tied to an object."""

    def __init__(self, path):
        self.path = path


def background_demo():
    logger.info("\n🧵 Background Monitor...")
    released = []
    done = threading.Event()

    with background_monitor(workers=2) as monitor:
        for index in range(3):
            handle = TempFile(f"/tmp/demo-{index}")
            path = handle.path

            def release(path=path):
                released.append(path)
                if len(released) == 3:
                    done.set()

            monitor.when_unreachable(handle, release)
        del handle

        collect_until(done.is_set, timeout=5.0)
        logger.info(f"✅ Released: {sorted(released)}")
        logger.info(f"   Stats: {monitor.get_stats().to_dict()}")


def foreground_demo():
    logger.info("\n🔁 Foreground Monitor...")
    reporter = MemoryErrorReporter()

    with foreground_monitor(MonitorConfig(reporters=[reporter])) as monitor:
        handle = TempFile("/tmp/demo-weak")
        reference = monitor.weak_reference(
            handle, lambda: logger.info("   Weak cleanup ran")
        )
        logger.info(f"   Reference alive: {reference.get() is handle}")

        broken = TempFile("/tmp/demo-broken")
        monitor.when_weakly_reachable(broken, lambda: 1 / 0)

        del handle, broken
        ran = monitor.drain()

        logger.info(f"✅ Drained {ran} cleanups")
        logger.info(f"   Reference alive: {reference.get() is not None}")
        logger.info(f"   Failures reported: {reporter.get_metrics().to_dict()}")


def main():
    logger.info("👻 Ghostbuster - Reachability Cleanup Demo")
    logger.info("=" * 50)

    background_demo()
    foreground_demo()

    logger.info("\n📊 Collector Stats...")
    stats = get_collector_stats()
    logger.info(f"   Collections: {stats['collections']}")
    logger.info(f"   Process memory: {stats['process_memory'] / 1024 / 1024:.1f} MB")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    main()
