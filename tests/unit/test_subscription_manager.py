"""
Unit Tests for SubscriptionManager
==================================

Test Coverage:
- Single-symbol endpoint identifiers and addChannel on open
- Combined subscriptions: hashed identifier, determinism, order sensitivity,
  one addChannel per stream in list order
- Duplicate symbols fail before any connection attempt
- Reconnection rebuilds the same subscription as a new session
- terminate() and listing of open sessions
"""

import asyncio
import json

import pytest

from zb_api.core.exceptions import DuplicateStreamError, SubscriptionNotFoundError, UsageError
from zb_api.infrastructure.exchanges.zb.connection_registry import ConnectionRegistry
from zb_api.infrastructure.exchanges.zb.socket_session import SessionKind, SessionState
from zb_api.infrastructure.exchanges.zb.stream_naming import string_hash
from zb_api.infrastructure.exchanges.zb.subscription_manager import SubscriptionManager


@pytest.fixture
def manager(settings, logger, connector):
    return SubscriptionManager(settings, logger, connect=connector)


def sent_messages(websocket):
    return [json.loads(frame) for frame in websocket.sent]


class TestSingleSubscription:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol", ["BTC_USDT", "eth_usdt", "Ltc_Qc"])
    async def test_endpoint_is_lowercase_symbol_with_suffix(self, manager, symbol):
        endpoint = manager.trades(symbol, lambda data: None)

        assert endpoint == symbol.lower() + "_trades"
        await manager.close()

    @pytest.mark.asyncio
    async def test_add_channel_sent_on_open(self, manager, connector, wait_until):
        endpoint = manager.trades("BTC_USDT", lambda data: None)
        await wait_until(lambda: connector.sockets and connector.last.sent)

        assert sent_messages(connector.last) == [{"event": "addChannel", "channel": "btc_usdt_trades"}]
        assert manager.list_subscriptions() == [endpoint]
        await manager.close()

    @pytest.mark.asyncio
    async def test_messages_reach_callback(self, manager, connector, wait_until):
        received = []
        manager.trades("BTC_USDT", received.append)
        await wait_until(lambda: connector.sockets and connector.last.sent)

        connector.last.feed('{"dataType": "trades", "channel": "btc_usdt_trades"}')
        await wait_until(lambda: received)

        assert received == [{"dataType": "trades", "channel": "btc_usdt_trades"}]
        await manager.close()

    def test_empty_symbol_rejected(self, manager, connector):
        with pytest.raises(UsageError):
            manager.trades("", lambda data: None)
        assert connector.calls == []


class TestCombinedSubscription:

    @pytest.mark.asyncio
    async def test_same_list_same_identifier(self, manager):
        first = manager.trades(["BTC_USDT", "ETH_USDT"], lambda data: None)
        second = manager.trades(["BTC_USDT", "ETH_USDT"], lambda data: None)

        assert first == second
        assert first == str(string_hash("btc_usdt_trades/eth_usdt_trades"))
        await manager.close()

    @pytest.mark.asyncio
    async def test_reordered_list_different_identifier(self, manager):
        forward = manager.trades(["BTC_USDT", "ETH_USDT"], lambda data: None)
        backward = manager.trades(["ETH_USDT", "BTC_USDT"], lambda data: None)

        assert forward != backward
        await manager.close()

    @pytest.mark.asyncio
    async def test_one_connection_one_add_channel_per_stream_in_order(self, manager, connector, wait_until):
        endpoint = manager.trades(["BTC_USDT", "ETH_USDT", "LTC_USDT"], lambda data: None)
        await wait_until(lambda: connector.sockets and len(connector.last.sent) == 3)

        assert len(connector.calls) == 1
        assert sent_messages(connector.last) == [
            {"event": "addChannel", "channel": "btc_usdt_trades"},
            {"event": "addChannel", "channel": "eth_usdt_trades"},
            {"event": "addChannel", "channel": "ltc_usdt_trades"},
        ]
        session = manager.subscriptions()[endpoint]
        assert session.streams == ["btc_usdt_trades", "eth_usdt_trades", "ltc_usdt_trades"]
        await manager.close()

    def test_duplicate_symbols_fail_without_connecting(self, manager, connector):
        with pytest.raises(DuplicateStreamError):
            manager.trades(["ETH_USDT", "ETH_USDT"], lambda data: None)

        assert connector.calls == []
        assert manager.list_subscriptions() == []

    def test_subscribe_combined_rejects_duplicate_streams(self, manager, connector):
        with pytest.raises(DuplicateStreamError):
            manager.subscribe_combined(["a_trades", "a_trades"], lambda data: None)
        assert connector.calls == []

    def test_subscribe_combined_rejects_empty_list(self, manager):
        with pytest.raises(UsageError):
            manager.subscribe_combined([], lambda data: None)


class TestGenericSubscribe:

    @pytest.mark.asyncio
    async def test_subscribe_returns_session(self, manager, wait_until):
        opened = []
        session = manager.subscribe("zb_qc_depth", lambda data: None, on_opened=opened.append,
                                    kind=SessionKind.ACCOUNT)
        await wait_until(lambda: opened)

        assert session.endpoint == "zb_qc_depth"
        assert session.kind is SessionKind.ACCOUNT
        assert manager.subscriptions() == {"zb_qc_depth": session}
        await manager.close()

    @pytest.mark.asyncio
    async def test_verbose_logs_subscription(self, manager, logger, events):
        manager.subscribe("zb_qc_depth", lambda data: None)

        assert "zb_subscriptions.subscribed" in events(logger.info)
        await manager.close()

    @pytest.mark.asyncio
    async def test_quiet_when_not_verbose(self, settings, logger, connector, events):
        settings.verbose = False
        manager = SubscriptionManager(settings, logger, connect=connector)
        manager.subscribe("zb_qc_depth", lambda data: None)

        assert "zb_subscriptions.subscribed" not in events(logger.info)
        await manager.close()

    def test_injected_empty_registry_is_used(self, settings, logger, connector):
        registry = ConnectionRegistry(logger)

        manager = SubscriptionManager(settings, logger, registry=registry, connect=connector)

        assert manager.registry is registry

    @pytest.mark.asyncio
    async def test_shared_registry(self, settings, logger, connector, wait_until):
        registry = ConnectionRegistry(logger)
        first = SubscriptionManager(settings, logger, registry=registry, connect=connector)
        second = SubscriptionManager(settings, logger, registry=registry, connect=connector)

        endpoint = first.trades("BTC_USDT", lambda data: None)
        await wait_until(lambda: endpoint in second.subscriptions())

        second.terminate(endpoint)
        assert endpoint not in first.subscriptions()
        await first.close()


class TestReconnect:

    @pytest.mark.asyncio
    async def test_closed_subscription_rebuilt_as_new_session(self, manager, connector, wait_until):
        received = []
        endpoint = manager.trades("BTC_USDT", received.append)
        await wait_until(lambda: endpoint in manager.subscriptions())
        first_session = manager.subscriptions()[endpoint]

        await connector.last.close(1006, "")
        await wait_until(lambda: len(connector.sockets) == 2 and endpoint in manager.subscriptions()
                         and manager.subscriptions()[endpoint] is not first_session)

        replacement = manager.subscriptions()[endpoint]
        assert first_session.state is SessionState.CLOSED
        assert replacement.state is SessionState.OPEN
        await wait_until(lambda: connector.last.sent)
        assert sent_messages(connector.last) == [{"event": "addChannel", "channel": "btc_usdt_trades"}]

        connector.last.feed('{"after": "reconnect"}')
        await wait_until(lambda: received)
        assert received == [{"after": "reconnect"}]
        await manager.close()

    @pytest.mark.asyncio
    async def test_combined_subscription_rebuilt_with_same_identifier(self, manager, connector, wait_until):
        endpoint = manager.trades(["BTC_USDT", "ETH_USDT"], lambda data: None)
        await wait_until(lambda: endpoint in manager.subscriptions())

        await connector.last.close()
        await wait_until(lambda: len(connector.sockets) == 2 and len(connector.last.sent) == 2)

        assert manager.list_subscriptions() == [endpoint]
        await manager.close()

    @pytest.mark.asyncio
    async def test_reconnect_disabled_makes_no_new_attempt(self, manager, settings, connector, wait_until):
        endpoint = manager.trades("BTC_USDT", lambda data: None)
        await wait_until(lambda: endpoint in manager.subscriptions())
        session = manager.subscriptions()[endpoint]

        settings.reconnect = False
        await connector.last.close()
        await session.wait_closed()

        assert len(connector.calls) == 1
        assert manager.list_subscriptions() == []
        assert manager._reconnect_tasks == {}

    @pytest.mark.asyncio
    async def test_resubscribe_fault_is_logged(self, manager, logger, connector, wait_until, events):
        endpoint = manager.trades("BTC_USDT", lambda data: None)
        await wait_until(lambda: endpoint in manager.subscriptions())

        def broken_trades(symbols, on_message):
            raise RuntimeError("loop closing")

        manager.trades = broken_trades
        await connector.last.close()
        await wait_until(lambda: "zb_subscriptions.resubscribe_failed" in events(logger.error))
        await manager.close()


class TestTerminate:

    @pytest.mark.asyncio
    async def test_terminate_removes_entry_immediately(self, manager, connector, wait_until):
        endpoint = manager.trades("BTC_USDT", lambda data: None)
        await wait_until(lambda: endpoint in manager.subscriptions())
        session = manager.subscriptions()[endpoint]

        manager.terminate(endpoint)

        # Transport teardown has not run yet
        assert session.state is not SessionState.CLOSED
        assert endpoint not in manager.subscriptions()
        assert manager.list_subscriptions() == []

        await session.wait_closed()
        assert len(connector.calls) == 1

    @pytest.mark.asyncio
    async def test_terminate_before_open(self, manager, connector, events, logger):
        endpoint = manager.trades("BTC_USDT", lambda data: None)

        manager.terminate(endpoint)
        for _ in range(5):
            await asyncio.sleep(0)

        assert connector.calls == []
        assert manager.list_subscriptions() == []
        assert "zb_subscriptions.terminated" in events(logger.info)
        with pytest.raises(SubscriptionNotFoundError):
            manager.terminate(endpoint)

    @pytest.mark.asyncio
    async def test_terminate_during_reconnect_delay(self, manager, settings, connector, wait_until):
        settings.reconnect_delay = 10.0
        endpoint = manager.trades(["BTC_USDT", "ETH_USDT"], lambda data: None)
        await wait_until(lambda: endpoint in manager.subscriptions())

        await connector.last.close(1006, "")
        await wait_until(lambda: endpoint in manager._reconnect_tasks.values())
        assert endpoint not in manager.subscriptions()

        manager.terminate(endpoint)
        await wait_until(lambda: manager._reconnect_tasks == {})

        assert len(connector.calls) == 1
        assert manager.list_subscriptions() == []

    @pytest.mark.asyncio
    async def test_terminate_leaves_other_subscriptions(self, manager, connector, wait_until):
        kept = manager.trades("ETH_USDT", lambda data: None)
        dropped = manager.trades("BTC_USDT", lambda data: None)

        manager.terminate(dropped)
        await wait_until(lambda: kept in manager.subscriptions())

        assert manager.list_subscriptions() == [kept]
        assert connector.calls == ["wss://stream.test/websocket"]
        await manager.close()

    def test_terminate_unknown_endpoint(self, manager):
        with pytest.raises(SubscriptionNotFoundError):
            manager.terminate("nope_trades")

    @pytest.mark.asyncio
    async def test_close_terminates_open_and_connecting_sessions(self, manager, connector, wait_until):
        open_endpoint = manager.trades("BTC_USDT", lambda data: None)
        await wait_until(lambda: open_endpoint in manager.subscriptions())
        connecting = manager.subscribe("eth_usdt_trades", lambda data: None)

        await manager.close()

        assert manager.list_subscriptions() == []
        assert connecting.state is SessionState.CLOSED
        assert len(connector.calls) in (1, 2)
        assert not manager.registry.heartbeat.is_running
