import asyncio
import json
from decimal import Decimal
from typing import Any, Dict, Optional

import aiohttp

from .errors import ExchangeError, NetworkError, RateLimitError, TradeBotError
from .exchange import (
    ACCOUNT,
    ACCOUNT_PATH,
    ORDER,
    ORDER_PATH,
    PRICE_PATH,
    PUBLIC,
    TICKER_24HR_PATH,
    BinanceClientBase,
    Params,
    classify_error,
    decode_body,
    parse_price,
)
from .logging_setup import logger
from .models import OrderRequest, OrderResult, TickerStats


class AsyncBinanceAdapter(BinanceClientBase):
    """Async Binance spot adapter using aiohttp.

    Same signing, timeout and retry policy as ``BinanceAdapter``; every call is
    awaitable so one slow exchange response does not stall other requests.

    Usage:
        async with AsyncBinanceAdapter(key, secret, testnet=True) as client:
            price = await client.get_price("BTCUSDT")
    """

    def __init__(self, api_key: str, secret: str, **kwargs):
        super().__init__(api_key, secret, **kwargs)
        self.session: Optional[aiohttp.ClientSession] = None

    async def open(self) -> None:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, path: str, params: Params = (), *, signed: bool, kind: str, attempt: int = 0):
        if not self.session:
            raise TradeBotError("Session not initialized; use 'async with' or call open()")
        if self.rate_limiter and not await self.rate_limiter.async_wait_if_needed(path, max_wait=self.timeout):
            raise RateLimitError(f"Client-side rate limit for {path} not lifted within {self.timeout}s")

        url, headers = self._prepare(path, params, signed)
        error: ExchangeError
        try:
            async with self.session.request(method, url, headers=headers) as resp:
                text = await resp.text()
                if 200 <= resp.status < 300:
                    return decode_body(resp.status, text, kind)
                error = classify_error(
                    resp.status,
                    self._decode_error(text),
                    kind,
                    retry_after=self._get_retry_after(resp.headers),
                )
        except NetworkError as e:
            error = e
        except asyncio.TimeoutError as e:
            error = NetworkError(f"Request timeout: {e!r}", timeout=True)
            error.__cause__ = e
        except aiohttp.ClientError as e:
            error = NetworkError(f"Request failed: {e}")
            error.__cause__ = e

        if self._should_retry(method, error, attempt):
            delay = self._retry_delay(error, attempt)
            logger.warning(f"{method} {path} failed ({error.message}); retry {attempt + 1}/{self.max_retries} in {delay:.2f}s")
            await asyncio.sleep(delay)
            return await self._request(method, path, params, signed=signed, kind=kind, attempt=attempt + 1)
        raise error

    @staticmethod
    def _decode_error(text: str) -> Any:
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def get_price(self, symbol: str) -> Decimal:
        data = await self._request("GET", PRICE_PATH, [("symbol", symbol)], signed=False, kind=PUBLIC)
        return parse_price(data)

    async def get_24hr_stats(self, symbol: str) -> TickerStats:
        data = await self._request("GET", TICKER_24HR_PATH, [("symbol", symbol)], signed=False, kind=PUBLIC)
        return TickerStats.from_response(data)

    async def get_account(self) -> Dict[str, Any]:
        return await self._request("GET", ACCOUNT_PATH, signed=True, kind=ACCOUNT)

    async def place_order(self, symbol: str, side: str, quantity: Any, client_order_id: Optional[str] = None) -> OrderResult:
        """Place a MARKET order asynchronously. A failure is never retried here."""
        order = OrderRequest.market(symbol, side, quantity, client_order_id)
        data = await self._request("POST", ORDER_PATH, order.params(), signed=True, kind=ORDER)
        result = OrderResult.from_response(data)
        logger.info(f"Market order placed | symbol={symbol} side={order.side} qty={quantity} order_id={result.order_id} status={result.status}")
        return result

    async def place_limit_order(self, symbol: str, side: str, quantity: Any, price: Any) -> OrderResult:
        data = await self._request("POST", ORDER_PATH, self._limit_params(symbol, side, quantity, price), signed=True, kind=ORDER)
        result = OrderResult.from_response(data)
        logger.info(f"Limit order placed | symbol={symbol} side={side.upper()} qty={quantity} price={price} order_id={result.order_id}")
        return result

    async def get_order(self, symbol: str, order_id: Any = None, *, orig_client_order_id: Optional[str] = None) -> OrderResult:
        params = [("symbol", symbol)] + self._order_ref(order_id, orig_client_order_id)
        return OrderResult.from_response(await self._request("GET", ORDER_PATH, params, signed=True, kind=ORDER))

    async def cancel_order(self, symbol: str, order_id: Any) -> OrderResult:
        params = [("symbol", symbol), ("orderId", order_id)]
        result = OrderResult.from_response(await self._request("DELETE", ORDER_PATH, params, signed=True, kind=ORDER))
        logger.info(f"Order cancelled | symbol={symbol} order_id={order_id} status={result.status}")
        return result
