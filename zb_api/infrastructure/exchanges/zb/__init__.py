"""
ZB WebSocket Transport
======================

Components:
- stream_naming: stream names and combined endpoint identifiers
- connection_registry: open sessions by endpoint, owns the heartbeat
- heartbeat_monitor: shared ping/pong liveness timer
- socket_session: one WebSocket connection and its lifecycle
- subscription_manager: single and combined subscriptions, addChannel
- error_codes: REST error-code table
"""

from .connection_registry import ConnectionRegistry
from .heartbeat_monitor import HeartbeatMonitor
from .socket_session import SessionKind, SessionState, SocketSession
from .stream_naming import combined_endpoint_id, string_hash, trade_stream
from .subscription_manager import SubscriptionManager

__all__ = [
    'ConnectionRegistry',
    'HeartbeatMonitor',
    'SessionKind',
    'SessionState',
    'SocketSession',
    'SubscriptionManager',
    'combined_endpoint_id',
    'string_hash',
    'trade_stream',
]
