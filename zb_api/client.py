"""
ZB Client
=========
Composition root for the library: one settings object, one logger, the
public REST client and the WebSocket subscription manager.

Usage:
    async with ZbClient({"reconnect": True, "verbose": True}) as client:
        candles = await client.candlesticks("btc_usdt", "1min")
        endpoint = client.ws.trades(["BTC_USDT", "ETH_USDT"], print)
        ...
        client.ws.terminate(endpoint)
"""

from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import aiohttp

from .core.exceptions import UsageError
from .core.logger import StructuredLogger, get_logger
from .infrastructure.config.config_loader import load_settings
from .infrastructure.config.settings import ClientSettings
from .infrastructure.exchanges.zb.subscription_manager import SubscriptionManager
from .infrastructure.exchanges.zb_rest_client import ZbRestClient

Options = Union[str, Path, Dict[str, Any], ClientSettings]


class ZbClient:
    """
    ZB exchange client.

    Args:
        options: ClientSettings, a dict of options or a JSON options file path
        logger: Sink for every diagnostic the client emits
        connect: WebSocket connection factory (``websockets.connect`` by default)
        http_session: Externally owned aiohttp session for REST calls
    """

    def __init__(
        self,
        options: Optional[Options] = None,
        logger: Optional[StructuredLogger] = None,
        connect: Optional[Callable[..., Any]] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = load_settings(options)
        self.logger = logger or get_logger("zb_api", self.settings.logging)
        self.rest = ZbRestClient(self.settings, self.logger, session=http_session)
        self.ws = SubscriptionManager(self.settings, self.logger, connect=connect)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def set_option(self, key: str, value: Any) -> None:
        """
        Change one option in place; open sessions see the new value.

        Raises:
            UsageError: if ``key`` is not a known option
            pydantic.ValidationError: if ``value`` is invalid for ``key``
        """
        if key not in ClientSettings.model_fields:
            raise UsageError(f"Unknown option: {key}")
        validated = ClientSettings(**{**self.settings.model_dump(), key: value})
        setattr(self.settings, key, getattr(validated, key))
        self._apply_settings()

    def configure(self, options: Options) -> ClientSettings:
        """Replace every option from a dict, a JSON file path or a ClientSettings."""
        new_settings = load_settings(options)
        for name in ClientSettings.model_fields:
            setattr(self.settings, name, getattr(new_settings, name))
        self._apply_settings()
        return self.settings

    def _apply_settings(self) -> None:
        self.ws.registry.heartbeat.interval = self.settings.heartbeat_interval

    async def candlesticks(self, market: str, type: str, size: int = 500, **params: Any) -> Any:
        """Kline data for ``market``; see ZbRestClient.candlesticks."""
        return await self.rest.candlesticks(market, type, size=size, **params)

    async def close(self) -> None:
        """Terminate every WebSocket session and close the HTTP session."""
        await self.ws.close()
        await self.rest.close()
