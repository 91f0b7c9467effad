"""
ZB Public REST Client
=====================
Public market-data requests against the ZB data API.

Every failure is raised as ExchangeRequestError: network errors, non-2xx
statuses, bodies that are not JSON objects, and payloads carrying an
exchange ``error_code`` (translated through the error-code table).
"""

import asyncio
import json
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientTimeout

from ...core.exceptions import ExchangeRequestError, UsageError
from ...core.logger import StructuredLogger
from ..config.settings import ClientSettings
from .zb.error_codes import map_error_message

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 6.1; WOW64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/39.0.2171.71 Safari/537.36"
)
CONTENT_TYPE = "text/javascript"


class ZbRestClient:
    """
    aiohttp client for the public ZB REST API.

    The HTTP session is created lazily and closed by ``close()`` or by
    leaving the async context manager. An externally owned session can be
    injected and is then never closed here.
    """

    def __init__(self, settings: ClientSettings, logger: StructuredLogger, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self.logger = logger
        self.session = session
        self._owns_session = session is None

        self.total_requests = 0
        self.failed_requests = 0

    async def __aenter__(self):
        """Async context manager entry"""
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    async def _ensure_session(self):
        """Ensure HTTP session is available"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=ClientTimeout(total=self.settings.timeout))
            self._owns_session = True

    async def close(self):
        """Close HTTP session"""
        if not self._owns_session or self.session is None:
            return
        if not self.session.closed:
            await self.session.close()
        self.session = None

    async def public_request(self, method: str, params: Dict[str, Any]) -> Any:
        """
        GET ``<rest_url><method>`` with ``params`` as the query string.

        Args:
            method: API method name, e.g. "kline"
            params: Query parameters; pass {} when there are none

        Returns:
            Parsed JSON response

        Raises:
            UsageError: if params is not a dict
            ExchangeRequestError: on any request failure
        """
        if not isinstance(params, dict):
            raise UsageError(
                f"public_request() params {params!r} must be a dict. If no params then pass an empty dict {{}}"
            )

        url = f"{self.settings.rest_url}{method}"
        request_desc = f"GET request to url {url} with parameters {json.dumps(params)}"
        return await self._execute_request("GET", url, params, request_desc)

    async def _execute_request(self, method: str, url: str, params: Dict[str, Any], request_desc: str) -> Any:
        await self._ensure_session()
        self.total_requests += 1

        headers = {
            "User-Agent": USER_AGENT,
            "Content-type": CONTENT_TYPE,
        }
        query = {k: str(v) for k, v in params.items()}

        try:
            async with self.session.request(method, url, params=query, headers=headers) as response:
                status = response.status
                body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._record_failure(request_desc, str(e))
            raise ExchangeRequestError(
                f"_execute_request() failed {request_desc}: {e}",
                request_desc=request_desc,
            ) from e

        if status < 200 or status >= 300:
            self._record_failure(request_desc, f"HTTP {status}")
            raise ExchangeRequestError(
                f"_execute_request() HTTP status code {status} returned from {request_desc}",
                request_desc=request_desc,
                status=status,
            )

        try:
            data = json.loads(body)
        except ValueError as e:
            self._record_failure(request_desc, "invalid_json")
            raise ExchangeRequestError(
                f"_execute_request() could not parse response from {request_desc}\nResponse: {body[:500]}",
                request_desc=request_desc,
                status=status,
            ) from e

        if not isinstance(data, (dict, list)):
            self._record_failure(request_desc, "unexpected_payload")
            raise ExchangeRequestError(
                f"_execute_request() could not parse response from {request_desc}\nResponse: {body[:500]}",
                request_desc=request_desc,
                status=status,
            )

        if isinstance(data, dict) and "error_code" in data:
            error_code = data["error_code"]
            error_message = map_error_message(error_code)
            self._record_failure(request_desc, error_message)
            raise ExchangeRequestError(
                f'_execute_request() {request_desc} returned error code {error_code}, message: "{error_message}"',
                request_desc=request_desc,
                status=status,
                error_code=error_code,
                error_message=error_message,
            )

        if self.settings.verbose:
            self.logger.debug("zb_rest.request_completed", {"request": request_desc, "status": status})
        return data

    def _record_failure(self, request_desc: str, error: str) -> None:
        self.failed_requests += 1
        self.logger.warning("zb_rest.request_failed", {
            "request": request_desc,
            "error": error,
        })

    async def candlesticks(self, market: str, type: str, size: int = 500, **params: Any) -> Any:
        """
        Kline data for ``market``.

        Args:
            market: Market name, e.g. "btc_usdt"
            type: Candle period, e.g. "1min", "1hour", "1day"
            size: Number of candles (at most 1000 on ZB)
            **params: Extra query parameters, e.g. ``since``
        """
        if not market:
            raise UsageError("candlesticks() market must be a non-empty string")
        query = {"market": market, "type": type, "size": size}
        query.update(params)
        return await self.public_request("kline", query)
