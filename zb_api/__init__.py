"""
ZB exchange API client: public REST helpers and a WebSocket subscription layer.
"""

from .client import ZbClient
from .core.exceptions import (
    DuplicateStreamError,
    ExchangeRequestError,
    SubscriptionNotFoundError,
    UsageError,
    ZbApiError,
)
from .infrastructure.config import ClientSettings, LoggingSettings
from .infrastructure.exchanges.zb import SessionKind, SessionState, SubscriptionManager

__version__ = "0.1.0"

__all__ = [
    'ClientSettings',
    'DuplicateStreamError',
    'ExchangeRequestError',
    'LoggingSettings',
    'SessionKind',
    'SessionState',
    'SubscriptionManager',
    'SubscriptionNotFoundError',
    'UsageError',
    'ZbApiError',
    'ZbClient',
]
