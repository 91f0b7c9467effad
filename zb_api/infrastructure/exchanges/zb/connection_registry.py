"""
ZB Connection Registry
======================
Table of open socket sessions keyed by endpoint identifier.

The registry owns the shared heartbeat monitor and reference counts it by
occupancy: the monitor starts when the first session is added and stops when
the last one is removed. Every mutation happens synchronously on the event
loop, so no lock is required.
"""

from typing import Dict, List, Optional, TYPE_CHECKING

from ....core.logger import StructuredLogger
from .heartbeat_monitor import HeartbeatMonitor

if TYPE_CHECKING:
    from .socket_session import SocketSession


class ConnectionRegistry:
    """Endpoint identifier -> open SocketSession."""

    def __init__(self, logger: StructuredLogger, heartbeat_interval: float = 30.0):
        self.logger = logger
        self._sessions: Dict[str, 'SocketSession'] = {}
        self.heartbeat = HeartbeatMonitor(self, logger, interval=heartbeat_interval)

    def add(self, session: 'SocketSession') -> Optional['SocketSession']:
        """
        Register an open session under its endpoint.

        Returns:
            The session previously registered under the same endpoint, if any
        """
        was_empty = not self._sessions
        previous = self._sessions.get(session.endpoint)
        self._sessions[session.endpoint] = session
        if was_empty:
            self.heartbeat.start()
        return previous if previous is not session else None

    def remove(self, session: 'SocketSession') -> bool:
        """
        Deregister a session.

        Only removes the entry if it still belongs to ``session``; a newer
        session registered under the same endpoint is left in place.
        """
        if self._sessions.get(session.endpoint) is not session:
            return False
        del self._sessions[session.endpoint]
        if not self._sessions:
            self.heartbeat.stop()
        return True

    def get(self, endpoint: str) -> Optional['SocketSession']:
        return self._sessions.get(endpoint)

    def sessions(self) -> List['SocketSession']:
        """Snapshot of registered sessions, safe to iterate while the registry changes."""
        return list(self._sessions.values())

    def snapshot(self) -> Dict[str, 'SocketSession']:
        return dict(self._sessions)

    def endpoints(self) -> List[str]:
        return list(self._sessions)

    def __contains__(self, endpoint: object) -> bool:
        return endpoint in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
