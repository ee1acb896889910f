"""Background reachability monitor.

Runs cleanup commands on a fixed pool of worker threads. Every worker
blocks on the monitor's notification channel; a reclaimed reference is
received by exactly one worker, which takes its cleanup out of the
registration table and runs it.
"""

import logging
import threading
import time
from typing import List, Optional

from .errors import InvalidArgumentError
from .monitor import MonitorConfig, MonitorCore, MonitorState, ReachabilityMonitor

logger = logging.getLogger(__name__)


class WorkerPoolCore(MonitorCore):
    """Monitor core that owns a pool of worker threads."""

    # A worker only stops on the channel's stop sentinel, so SystemExit and
    # other BaseExceptions from a cleanup are reported like any failure.
    contained_errors = (BaseException,)

    def __init__(self, name: str, config: MonitorConfig, workers: int):
        super().__init__(name, config)
        self.workers = workers
        self._threads: List[threading.Thread] = []

    @property
    def worker_count(self) -> int:
        return sum(1 for thread in self._threads if thread.is_alive())

    def start(self) -> None:
        """Start the worker threads."""
        with self._lock:
            if self._threads:
                return
            for index in range(self.workers):
                thread = threading.Thread(
                    target=self._worker,
                    name=f"{self.config.worker_name_prefix}-{self.name}-{index}",
                    daemon=self.config.daemon_workers,
                )
                self._threads.append(thread)
                thread.start()

        logger.info("Monitor %s started %d workers", self.name, self.workers)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the workers to stop. Returns True if none is left running."""
        deadline = None if timeout is None else time.monotonic() + timeout
        current = threading.current_thread()
        for thread in list(self._threads):
            if thread is current:
                continue
            if deadline is None:
                thread.join()
            else:
                thread.join(max(0.0, deadline - time.monotonic()))
        return self.worker_count == 0

    def _worker(self) -> None:
        """Worker loop: wait for reclaimed references and run their cleanups."""
        logger.debug("Worker %s started", threading.current_thread().name)
        while True:
            reference = self.channel.remove()
            if reference is None:
                break
            self.run_cleanup(reference)
        logger.debug("Worker %s stopped", threading.current_thread().name)

    def request_shutdown(self) -> None:
        with self._lock:
            if self.state is not MonitorState.ACTIVE:
                return
            self.state = MonitorState.DRAINING
            threads = list(self._threads)

        # Workers finish the references already queued, then stop.
        self.channel.close(waiters=len(threads))

        self.join(self.config.shutdown_timeout)
        current = threading.current_thread()
        for thread in threads:
            if thread is not current and thread.is_alive():
                logger.warning(
                    "Worker %s did not stop within %.1fs",
                    thread.name,
                    self.config.shutdown_timeout,
                )

        dropped = self.table.invalidate_all()
        with self._lock:
            self.state = MonitorState.SHUT_DOWN
        logger.info(
            "Monitor %s shut down (%d pending cleanups dropped)", self.name, dropped
        )


class BackgroundReachabilityMonitor(ReachabilityMonitor):
    """Reachability monitor that runs cleanups on background threads.

    Registration only records the cleanup and returns. Exceptions raised by
    cleanups are reported and never stop a worker, but a cleanup that blocks
    forever stalls its worker; more than one worker mitigates that.
    """

    def __init__(self, workers: int = 1, config: Optional[MonitorConfig] = None):
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise InvalidArgumentError(
                f"workers must be an integer >= 1, got {workers!r}",
                argument="workers",
                value=workers,
            )
        config = config or MonitorConfig()
        config.validate()

        core = WorkerPoolCore(self._next_name("background"), config, workers)
        super().__init__(core)
        core.start()

    @property
    def workers(self) -> int:
        return self._core.workers

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the workers to stop. Returns True if all of them did."""
        return self._core.join(timeout)
