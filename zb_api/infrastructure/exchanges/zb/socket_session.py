"""
ZB Socket Session
=================
One WebSocket connection to the ZB stream endpoint.

Lifecycle:
    CONNECTING ──open──► OPEN ──abort/server close──► CLOSING ──► CLOSED
         │                                                          │
         └────────────── connect failure ───────────────────────────┘

A closed session is never reopened. Reconnection builds a brand-new session
through the reconnect callback supplied by the subscription manager.

All handlers run inside the session task on the event loop, so for one
session the open handler always runs before any message, and messages
always run before the close handler.
"""

import asyncio
import inspect
import json
import time
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Set, Union, TYPE_CHECKING

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ....core.exceptions import UsageError
from ....core.logger import StructuredLogger
from ...config.settings import ClientSettings

if TYPE_CHECKING:
    from .connection_registry import ConnectionRegistry

MessageHandler = Callable[[Any], Union[None, Awaitable[None]]]
OpenedHandler = Callable[[str], Union[None, Awaitable[None]]]
ReconnectHandler = Callable[[], None]


class SessionState(str, Enum):
    """Connection lifecycle states"""
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class SessionKind(str, Enum):
    """What a session carries; only affects how reconnects are reported."""
    MARKET = "market"
    ACCOUNT = "account"


class SocketSession:
    """
    WebSocket session with liveness tracking and close-driven reconnection.

    Args:
        endpoint: Registry key of this session (stream name or combined hash)
        on_message: Receives every inbound frame as parsed JSON
        registry: Registry the session joins once open
        settings: Shared client options (reconnect gate, URL, timeout)
        logger: Structured logger
        connect: Connection factory, ``websockets.connect`` by default
        streams: Stream names multiplexed over this session (combined only)
        reconnect: Called after close to rebuild the subscription
        on_opened: Called with ``endpoint`` once the session is registered
        kind: Session kind, used for reconnect logging
    """

    def __init__(
        self,
        endpoint: str,
        on_message: MessageHandler,
        *,
        registry: 'ConnectionRegistry',
        settings: ClientSettings,
        logger: StructuredLogger,
        connect: Optional[Callable[..., Any]] = None,
        streams: Optional[List[str]] = None,
        reconnect: Optional[ReconnectHandler] = None,
        on_opened: Optional[OpenedHandler] = None,
        kind: SessionKind = SessionKind.MARKET,
    ):
        if not isinstance(endpoint, str) or not endpoint:
            raise UsageError("endpoint must be a non-empty string")
        if not callable(on_message):
            raise UsageError("on_message must be callable")

        self.endpoint = endpoint
        self.streams = list(streams) if streams is not None else None
        self.kind = kind
        self.registry = registry
        self.settings = settings
        self.logger = logger

        self.transport = None
        self.state = SessionState.CONNECTING
        self.is_alive = False
        # Captured at creation; the live settings.reconnect is checked again on close
        self.reconnect_enabled = settings.reconnect

        self._on_message = on_message
        self._on_opened = on_opened
        self._reconnect = reconnect
        self._connect = connect or websockets.connect

        self._terminated = False
        self._task: Optional[asyncio.Task] = None
        self._active_tasks: Set[asyncio.Task] = set()
        self._closed = asyncio.Event()
        self.opened_at: Optional[float] = None
        self.messages_received = 0

    def __repr__(self) -> str:
        return f"<SocketSession endpoint={self.endpoint!r} state={self.state.value}>"

    @property
    def channels(self) -> List[str]:
        """Channels to add after open: the stream list, or the endpoint itself."""
        return list(self.streams) if self.streams is not None else [self.endpoint]

    @property
    def is_open(self) -> bool:
        return (
            self.state is SessionState.OPEN
            and self.transport is not None
            and self.transport.close_code is None
        )

    @property
    def is_terminated(self) -> bool:
        return self._terminated

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self) -> asyncio.Task:
        """Schedule the connection on the running loop and return its task."""
        if self._task is not None:
            raise UsageError(f"Session {self.endpoint} was already started")
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"zb_session_{self.endpoint}")
        return self._task

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def _create_tracked_task(self, coro, name: str = "") -> asyncio.Task:
        """Create a tracked asyncio task so it can be cancelled on terminate"""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._active_tasks.add(task)
        task.add_done_callback(self._active_tasks.discard)
        return task

    # ===== Connection task =====

    async def _run(self) -> None:
        try:
            try:
                self.transport = await self._connect(
                    self.settings.ws_url,
                    ping_interval=None,  # liveness is driven by the shared HeartbeatMonitor
                    open_timeout=self.settings.timeout,
                )
            except asyncio.CancelledError:
                raise
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                self._handle_error(e)
                self._handle_close(None, None)
                return

            if self._terminated:
                await self.transport.close()
                self._handle_close(self.transport.close_code, self.transport.close_reason)
                return

            await self._handle_open()

            try:
                async for message in self.transport:
                    if self._terminated:
                        break
                    await self._handle_message(message)
            except ConnectionClosed:
                # Abnormal closure; code and reason are read from the transport below
                pass
            except WebSocketException as e:
                self._handle_error(e)

            self._handle_close(self.transport.close_code, self.transport.close_reason)

        except asyncio.CancelledError:
            self.state = SessionState.CLOSED
            self._closed.set()
            raise

    # ===== Event handlers =====

    async def _handle_open(self) -> None:
        self.state = SessionState.OPEN
        self.is_alive = True
        self.opened_at = time.time()

        replaced = self.registry.add(self)
        if replaced is not None:
            self.logger.warning("zb_session.endpoint_replaced", {
                "endpoint": self.endpoint,
                "previous_state": replaced.state.value,
            })

        if self.settings.verbose:
            self.logger.info("zb_session.opened", {
                "endpoint": self.endpoint,
                "url": self.settings.ws_url,
                "streams": self.streams,
                "open_sessions": len(self.registry),
            })

        if self._on_opened is None:
            return
        try:
            result = self._on_opened(self.endpoint)
            if inspect.isawaitable(result):
                await result
        except ConnectionClosed:
            # The close path reports it
            pass
        except Exception as e:
            self.logger.error("zb_session.opened_callback_error", {
                "endpoint": self.endpoint,
                "error": str(e),
                "error_type": type(e).__name__,
            })

    async def _handle_message(self, message: Union[str, bytes]) -> None:
        try:
            data = json.loads(message)
        except ValueError as e:
            self.logger.warning("zb_session.parse_error", {
                "endpoint": self.endpoint,
                "error": str(e),
                "message_sample": str(message)[:200],
            })
            return

        self.messages_received += 1
        try:
            result = self._on_message(data)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error("zb_session.message_handler_error", {
                "endpoint": self.endpoint,
                "error": str(e),
                "error_type": type(e).__name__,
            })

    def _handle_error(self, error: BaseException) -> None:
        # The close handler always follows an error
        self.logger.error("zb_session.error", {
            "endpoint": self.endpoint,
            "code": getattr(error, 'errno', None) or getattr(error, 'code', None),
            "error": str(error),
            "error_type": type(error).__name__,
        })

    def _handle_pong(self) -> None:
        self.is_alive = True

    def _handle_close(self, code: Optional[int], reason: Optional[str]) -> None:
        self.state = SessionState.CLOSED
        self.is_alive = False
        self.registry.remove(self)
        self._closed.set()

        if self._terminated:
            return

        self.logger.info("zb_session.closed", {
            "endpoint": self.endpoint,
            "code": code,
            "reason": reason or None,
            "open_sessions": len(self.registry),
        })

        if not (self.settings.reconnect and self.reconnect_enabled and self._reconnect is not None):
            return

        if self.kind is SessionKind.ACCOUNT:
            self.logger.info("zb_session.account_reconnecting", {"endpoint": self.endpoint})
        else:
            self.logger.info("zb_session.reconnecting", {"endpoint": self.endpoint})
        try:
            self._reconnect()
        except Exception as e:
            self.logger.error("zb_session.reconnect_failed", {
                "endpoint": self.endpoint,
                "error": str(e),
                "error_type": type(e).__name__,
            })

    # ===== Liveness =====

    def probe(self) -> None:
        """Send a liveness ping if the transport is open."""
        if not self.is_open:
            return
        self._create_tracked_task(self._ping(), f"zb_ping_{self.endpoint}")

    async def _ping(self) -> None:
        try:
            pong_waiter = await self.transport.ping()
            await pong_waiter
        except ConnectionClosed:
            return
        except Exception as e:
            self.logger.debug("zb_session.ping_failed", {
                "endpoint": self.endpoint,
                "error": str(e),
            })
            return
        if not self._terminated:
            self._handle_pong()

    def abort(self) -> None:
        """
        Drop the transport without a closing handshake.

        The session then goes through its normal close path, including
        reconnection.
        """
        if not self.is_open:
            return
        self.state = SessionState.CLOSING
        raw_transport = getattr(self.transport, 'transport', None)
        if raw_transport is not None:
            raw_transport.abort()
        else:
            self._create_tracked_task(self.transport.close(), f"zb_close_{self.endpoint}")

    def terminate(self) -> None:
        """
        Close the session for good.

        The registry entry is gone when this returns, and no further
        callbacks fire for this session: no messages, no close handling and
        no reconnect. Transport teardown may finish later.
        """
        if self._terminated:
            return
        self._terminated = True
        self.registry.remove(self)

        for task in list(self._active_tasks):
            task.cancel()

        if self.state is SessionState.CONNECTING and self._task is not None:
            self._task.cancel()
            self.state = SessionState.CLOSED
            self._closed.set()
        elif self.is_open:
            self.abort()

        self.logger.info("zb_session.terminated", {"endpoint": self.endpoint})

    async def send_json(self, payload: Any) -> None:
        """Serialise ``payload`` and send it as a text frame."""
        if self.transport is None:
            raise UsageError(f"Session {self.endpoint} is not connected")
        await self.transport.send(json.dumps(payload))
