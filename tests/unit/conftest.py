"""
Shared fixtures for ZB client unit tests
========================================

Provides an in-memory WebSocket and connector so session lifecycle tests run
without network access, plus a mocked StructuredLogger for asserting log
events.
"""

import asyncio
from typing import Any, Callable, List, Optional
from unittest.mock import MagicMock

import pytest

from zb_api.core.logger import StructuredLogger
from zb_api.infrastructure.config.settings import ClientSettings

_EOF = object()


class FakeRawTransport:
    """Stands in for the asyncio transport under a websockets connection."""

    def __init__(self, websocket: 'FakeWebSocket'):
        self.websocket = websocket
        self.aborted = False

    def abort(self):
        self.aborted = True
        self.websocket.connection_lost(1006, "")


class FakeWebSocket:
    """In-memory WebSocket with the surface SocketSession relies on."""

    def __init__(self, url: str, **kwargs):
        self.url = url
        self.connect_kwargs = kwargs
        self.sent: List[str] = []
        self.pings: List[asyncio.Future] = []
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.transport = FakeRawTransport(self)
        self._inbox: asyncio.Queue = asyncio.Queue()

    # --- test controls ---

    def feed(self, message: Any) -> None:
        self._inbox.put_nowait(message)

    def answer_pings(self) -> None:
        for pong_waiter in self.pings:
            if not pong_waiter.done():
                pong_waiter.set_result(0.0)

    def connection_lost(self, code: int, reason: str) -> None:
        if self.close_code is not None:
            return
        self.close_code = code
        self.close_reason = reason
        for pong_waiter in self.pings:
            if not pong_waiter.done():
                pong_waiter.cancel()
        self._inbox.put_nowait(_EOF)

    # --- websockets connection surface ---

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def ping(self) -> asyncio.Future:
        pong_waiter = asyncio.get_running_loop().create_future()
        self.pings.append(pong_waiter)
        return pong_waiter

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.connection_lost(code, reason)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _EOF:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """
    Replacement for ``websockets.connect``.

    Records every call; the first ``fail_times`` calls raise ``error``.
    """

    def __init__(self, fail_times: int = 0, error: Optional[BaseException] = None):
        self.fail_times = fail_times
        self.error = error or ConnectionRefusedError(111, "Connection refused")
        self.calls: List[str] = []
        self.sockets: List[FakeWebSocket] = []

    async def __call__(self, url: str, **kwargs) -> FakeWebSocket:
        self.calls.append(url)
        if len(self.calls) <= self.fail_times:
            raise self.error
        websocket = FakeWebSocket(url, **kwargs)
        self.sockets.append(websocket)
        return websocket

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0)


@pytest.fixture
def wait_until():
    """Await a condition while letting the event loop run"""
    return _wait_until


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def logger():
    """Mock StructuredLogger for capturing log calls"""
    mock_logger = MagicMock(spec=StructuredLogger)
    mock_logger.info = MagicMock()
    mock_logger.warning = MagicMock()
    mock_logger.error = MagicMock()
    mock_logger.debug = MagicMock()
    mock_logger.logger = MagicMock()
    return mock_logger


@pytest.fixture
def settings():
    """ClientSettings with immediate reconnects"""
    return ClientSettings(
        ws_url="wss://stream.test/websocket",
        rest_url="http://rest.test/data/v1/",
        reconnect=True,
        verbose=True,
        heartbeat_interval=30.0,
        reconnect_delay=0.0,
    )


def logged_events(mock_method: MagicMock) -> List[str]:
    """Event types passed to one mocked logger method."""
    return [call.args[0] for call in mock_method.call_args_list]


@pytest.fixture
def events():
    return logged_events
