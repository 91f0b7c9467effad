"""
ZB Subscription Manager
=======================
Builds single-stream and combined-stream sessions on the shared endpoint.

Channel multiplexing happens at the message level: every session connects to
the same URL and, once open, sends one ``addChannel`` control message per
stream it carries. A combined subscription is one physical connection
addressed by the hash of its stream list.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union

from ....core.exceptions import SubscriptionNotFoundError, UsageError
from ....core.logger import StructuredLogger
from ...config.settings import ClientSettings
from .connection_registry import ConnectionRegistry
from .socket_session import (
    MessageHandler,
    OpenedHandler,
    ReconnectHandler,
    SessionKind,
    SocketSession,
)
from .stream_naming import combined_endpoint_id, combined_key, ensure_unique, trade_stream

ADD_CHANNEL_EVENT = "addChannel"


class SubscriptionManager:
    """
    Entry point for WebSocket subscriptions.

    Args:
        settings: Shared client options
        logger: Structured logger
        registry: Registry of open sessions; a private one is created if omitted
        connect: Connection factory handed to every session
    """

    def __init__(
        self,
        settings: ClientSettings,
        logger: StructuredLogger,
        registry: Optional[ConnectionRegistry] = None,
        connect: Optional[Callable[..., Any]] = None,
    ):
        self.settings = settings
        self.logger = logger
        self.registry = registry if registry is not None else ConnectionRegistry(
            logger, heartbeat_interval=settings.heartbeat_interval
        )
        self._connect = connect

        # Sessions whose connection task is still running, open or not
        self._running_sessions: Set[SocketSession] = set()
        # Pending resubscriptions -> endpoint they rebuild
        self._reconnect_tasks: Dict[asyncio.Task, str] = {}

    # ===== Generic subscriptions =====

    def subscribe(
        self,
        endpoint: str,
        on_message: MessageHandler,
        reconnect: Optional[ReconnectHandler] = None,
        on_opened: Optional[OpenedHandler] = None,
        kind: SessionKind = SessionKind.MARKET,
    ) -> SocketSession:
        """Open one session addressed by ``endpoint``."""
        session = SocketSession(
            endpoint,
            on_message,
            registry=self.registry,
            settings=self.settings,
            logger=self.logger,
            connect=self._connect,
            reconnect=reconnect,
            on_opened=on_opened,
            kind=kind,
        )
        if self.settings.verbose:
            self.logger.info("zb_subscriptions.subscribed", {"endpoint": endpoint})
        self._start(session)
        return session

    def subscribe_combined(
        self,
        streams: Sequence[str],
        on_message: MessageHandler,
        reconnect: Optional[ReconnectHandler] = None,
        on_opened: Optional[OpenedHandler] = None,
    ) -> SocketSession:
        """
        Open one session multiplexing ``streams``.

        Raises:
            UsageError: if ``streams`` is empty
            DuplicateStreamError: if a stream appears twice
        """
        streams = list(streams)
        if not streams:
            raise UsageError("subscribe_combined: streams must not be empty")
        ensure_unique(streams, "subscribe_combined")

        endpoint = combined_endpoint_id(streams)
        session = SocketSession(
            endpoint,
            on_message,
            registry=self.registry,
            settings=self.settings,
            logger=self.logger,
            connect=self._connect,
            streams=streams,
            reconnect=reconnect,
            on_opened=on_opened,
        )
        if self.settings.verbose:
            self.logger.info("zb_subscriptions.combined_subscribed", {
                "endpoint": endpoint,
                "streams": combined_key(streams),
            })
        self._start(session)
        return session

    def _start(self, session: SocketSession) -> None:
        task = session.start()
        self._running_sessions.add(session)
        task.add_done_callback(lambda _: self._running_sessions.discard(session))

    # ===== Channel control =====

    async def add_channel(self, endpoint: str) -> None:
        """Send ``addChannel`` for every stream carried by the session at ``endpoint``."""
        session = self.registry.get(endpoint)
        if session is None:
            raise SubscriptionNotFoundError(endpoint)
        for channel in session.channels:
            await session.send_json({"event": ADD_CHANNEL_EVENT, "channel": channel})
            self.logger.debug("zb_subscriptions.channel_added", {
                "endpoint": endpoint,
                "channel": channel,
            })

    # ===== Trade streams =====

    def trades(self, symbols: Union[str, Sequence[str]], on_message: MessageHandler) -> str:
        """
        Subscribe to trades for one symbol or a list of symbols.

        A single symbol gets its own session keyed ``<symbol>_trades``. A
        list gets one combined session keyed by the hash of its stream
        names, in the order given. Closed sessions are rebuilt through this
        same call while reconnection is enabled.

        Args:
            symbols: "BTC_USDT" or ["BTC_USDT", "ETH_USDT"]
            on_message: Receives each parsed trade message

        Returns:
            Endpoint identifier of the new session

        Raises:
            DuplicateStreamError: if the symbol list repeats a symbol
        """
        def reconnect():
            if self.settings.reconnect:
                self._schedule_resubscribe(endpoint, lambda: self.trades(symbols, on_message), symbols)

        if isinstance(symbols, str):
            if not symbols:
                raise UsageError("trades: symbol must be a non-empty string")
            endpoint = trade_stream(symbols)
            self.subscribe(endpoint, on_message, reconnect, self.add_channel)
            return endpoint

        symbols = list(symbols)
        ensure_unique(symbols, "trades")
        streams = [trade_stream(symbol) for symbol in symbols]
        endpoint = self.subscribe_combined(streams, on_message, reconnect, self.add_channel).endpoint
        return endpoint

    def _schedule_resubscribe(self, endpoint: str, resubscribe: Callable[[], Any], symbols: Any) -> None:
        task = asyncio.get_running_loop().create_task(
            self._safe_resubscribe(resubscribe, symbols), name=f"zb_resubscribe_{endpoint}"
        )
        self._reconnect_tasks[task] = endpoint
        task.add_done_callback(lambda t: self._reconnect_tasks.pop(t, None))

    async def _safe_resubscribe(self, resubscribe: Callable[[], Any], symbols: Any) -> None:
        """Rebuild a subscription after the configured delay, logging any failure"""
        try:
            await asyncio.sleep(self.settings.reconnect_delay)
            resubscribe()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error("zb_subscriptions.resubscribe_failed", {
                "symbols": symbols,
                "error": str(e),
                "error_type": type(e).__name__,
            })

    # ===== Registry access =====

    def subscriptions(self) -> Dict[str, SocketSession]:
        """Open sessions by endpoint identifier."""
        return self.registry.snapshot()

    def list_subscriptions(self) -> List[str]:
        return self.registry.endpoints()

    def terminate(self, endpoint_id: str) -> None:
        """
        Terminate the subscription at ``endpoint_id``.

        Stops the open session, a session still connecting and a pending
        resubscription for this identifier. The entry is gone from
        ``subscriptions()`` when this returns and the subscription is not
        rebuilt.

        Raises:
            SubscriptionNotFoundError: if nothing is open, connecting or
                waiting to reconnect under this identifier
        """
        sessions = {
            session for session in self._running_sessions
            if session.endpoint == endpoint_id and not session.is_terminated
        }
        registered = self.registry.get(endpoint_id)
        if registered is not None:
            sessions.add(registered)
        pending = [task for task, endpoint in self._reconnect_tasks.items() if endpoint == endpoint_id]

        if not sessions and not pending:
            raise SubscriptionNotFoundError(endpoint_id)

        for task in pending:
            task.cancel()
        for session in sessions:
            session.terminate()
        if self.settings.verbose:
            self.logger.info("zb_subscriptions.terminated", {"endpoint": endpoint_id})

    async def close(self) -> None:
        """Terminate every session and cancel pending connects and reconnects."""
        reconnect_tasks = list(self._reconnect_tasks)
        for task in reconnect_tasks:
            task.cancel()

        sessions = set(self.registry.sessions()) | self._running_sessions
        for session in sessions:
            session.terminate()

        session_tasks = [session.task for session in sessions if session.task is not None]
        await asyncio.gather(*reconnect_tasks, *session_tasks, return_exceptions=True)
        self.logger.info("zb_subscriptions.closed", {"terminated_sessions": len(sessions)})
