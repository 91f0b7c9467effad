"""
ZB Heartbeat Monitor
====================
One timer for all sessions of a registry, instead of one per connection.

Each tick walks every registered session that is still open:
- alive: clear the flag and send a ping
- not alive (last ping unanswered): log and abort the transport

A pong sets the flag again, so a session is dropped after two consecutive
unanswered probes (60s with the default 30s interval).
"""

import asyncio
from typing import Optional, TYPE_CHECKING

from ....core.logger import StructuredLogger

if TYPE_CHECKING:
    from .connection_registry import ConnectionRegistry


class HeartbeatMonitor:
    """Shared liveness timer, started and stopped by the ConnectionRegistry."""

    def __init__(self, registry: 'ConnectionRegistry', logger: StructuredLogger, interval: float = 30.0):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.registry = registry
        self.logger = logger
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="zb_heartbeat")
        self.logger.debug("zb_heartbeat.started", {"interval_seconds": self.interval})

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        self.logger.debug("zb_heartbeat.stopped")

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                self.tick()
        except asyncio.CancelledError:
            pass

    def tick(self) -> None:
        """Run one liveness pass over every registered session."""
        # Sessions removed by terminate() are no longer in the snapshot
        for session in self.registry.sessions():
            # Aborted sessions stay registered until their close is processed
            if not session.is_open:
                continue
            if session.is_alive:
                session.is_alive = False
                session.probe()
            else:
                self.logger.warning("zb_heartbeat.terminating_inactive", {
                    "endpoint": session.endpoint,
                    "interval_seconds": self.interval,
                })
                session.abort()
