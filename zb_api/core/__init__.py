"""
Core module for the ZB API client: structured logging and exceptions.
"""

from .exceptions import (
    DuplicateStreamError,
    ExchangeRequestError,
    SubscriptionNotFoundError,
    UsageError,
    ZbApiError,
)
from .logger import StructuredLogger, get_logger

__all__ = [
    'DuplicateStreamError',
    'ExchangeRequestError',
    'StructuredLogger',
    'SubscriptionNotFoundError',
    'UsageError',
    'ZbApiError',
    'get_logger',
]
