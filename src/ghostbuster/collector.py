"""
Garbage collector helpers for Ghostbuster.

Reclamation is driven by the interpreter, so code that needs a cleanup to
happen now (tests, mostly) has to force collection rather than wait for it.
This module provides:
- Forced collection with timing and process memory figures
- Polling until a condition holds, collecting between polls
- Collector statistics
"""

import gc
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Tuple

import psutil


@dataclass
class CollectionResult:
    """Result of a forced collection."""

    collected: int
    gc_time: float
    generation: int
    passes: int
    gc_counts: Tuple[int, int, int] = (0, 0, 0)
    process_memory: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collected": self.collected,
            "gc_time": self.gc_time,
            "generation": self.generation,
            "passes": self.passes,
            "gc_counts": list(self.gc_counts),
            "process_memory": self.process_memory,
            "timestamp": self.timestamp,
        }


def force_collection(generation: int = 2, passes: int = 2) -> CollectionResult:
    """Run the cyclic collector ``passes`` times.

    Weakref callbacks fired by one pass can release more objects, so a
    single pass is not always enough to deliver every notification.
    """
    start_time = time.time()

    collected = 0
    for _ in range(max(1, passes)):
        collected += gc.collect(generation)

    gc_time = time.time() - start_time

    return CollectionResult(
        collected=collected,
        gc_time=gc_time,
        generation=generation,
        passes=max(1, passes),
        gc_counts=gc.get_count(),
        process_memory=psutil.Process().memory_info().rss,
    )


def collect_until(
    predicate: Callable[[], bool],
    timeout: float = 5.0,
    interval: float = 0.01,
) -> bool:
    """Force collection until ``predicate`` holds or ``timeout`` expires.

    Returns the last value of the predicate.
    """
    deadline = time.monotonic() + timeout
    while True:
        force_collection()
        if predicate():
            return True
        if time.monotonic() >= deadline:
            return bool(predicate())
        time.sleep(interval)


def get_collector_stats() -> Dict[str, Any]:
    """Get garbage collector and process memory statistics."""
    gc_stats = gc.get_stats()
    memory_info = psutil.Process().memory_info()

    return {
        "enabled": gc.isenabled(),
        "thresholds": list(gc.get_threshold()),
        "counts": list(gc.get_count()),
        "collections": sum(stat["collections"] for stat in gc_stats),
        "collected": sum(stat["collected"] for stat in gc_stats),
        "uncollectable": sum(stat["uncollectable"] for stat in gc_stats),
        "process_memory": memory_info.rss,
        "virtual_memory": memory_info.vms,
    }
