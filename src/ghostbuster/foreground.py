"""Foreground reachability monitor.

Runs cleanup commands on the caller's own thread, each time the caller
registers a new cleanup. Meant for environments where spawning threads is
not allowed.

Cleanup timing is tied to how often the monitor is called: a reclaimed
object's cleanup runs during the next registration (or explicit ``drain``),
not promptly.
"""

import logging
from typing import Optional

from .monitor import MonitorConfig, MonitorCore, ReachabilityMonitor

logger = logging.getLogger(__name__)


class ForegroundReachabilityMonitor(ReachabilityMonitor):
    """Reachability monitor that drains on every registration.

    After ``request_shutdown`` registrations are still accepted and still
    return references, but they are inert: nothing is recorded and no
    cleanup ever runs.
    """

    def __init__(self, config: Optional[MonitorConfig] = None):
        config = config or MonitorConfig()
        config.validate()
        super().__init__(MonitorCore(self._next_name("foreground"), config))
        logger.debug("Created foreground monitor %s", self.name)

    def _after_register(self) -> None:
        self.drain()

    def drain(self) -> int:
        """Run the cleanups of every object reclaimed so far.

        Returns the number of cleanups run. A no-op after shutdown.
        """
        return self._core.drain()
