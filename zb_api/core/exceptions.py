"""
Core Exceptions - ZB API client
===============================
Centralized exception definitions for the REST and WebSocket layers.

Transport and protocol faults on WebSockets are logged, never raised. What
reaches the caller is either a usage fault (raised synchronously, before any
network I/O) or a REST request failure.
"""

from typing import Iterable, Optional


class ZbApiError(Exception):
    """Base exception for the ZB API client."""
    pass


class UsageError(ZbApiError, ValueError):
    """
    Raised when a call violates a precondition.

    Always raised synchronously, before any connection attempt is made.
    """
    pass


class DuplicateStreamError(UsageError):
    """Raised when a combined subscription lists the same symbol or stream twice."""
    def __init__(self, operation: str, duplicates: Iterable[str]):
        self.operation = operation
        self.duplicates = sorted(set(duplicates))
        self.message = f'{operation}: "symbols" cannot contain duplicate elements: {self.duplicates}'
        super().__init__(self.message)


class SubscriptionNotFoundError(ZbApiError, KeyError):
    """Raised when an endpoint identifier has no open session."""
    def __init__(self, endpoint_id: str):
        self.endpoint_id = endpoint_id
        self.message = f"No open subscription for endpoint: {endpoint_id}"
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class ExchangeRequestError(ZbApiError):
    """
    Raised when a REST request fails.

    Covers network failures, non-2xx HTTP statuses, unparsable bodies and
    responses carrying an exchange ``error_code``.
    """
    def __init__(
        self,
        message: str,
        request_desc: str = "",
        status: Optional[int] = None,
        error_code: Optional[int] = None,
        error_message: Optional[str] = None,
    ):
        self.message = message
        self.request_desc = request_desc
        self.status = status
        self.error_code = error_code
        self.error_message = error_message
        super().__init__(message)
