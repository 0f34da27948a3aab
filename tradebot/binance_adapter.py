import time
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

from .errors import ExchangeError, NetworkError, RateLimitError
from .exchange import (
    ACCOUNT,
    ACCOUNT_PATH,
    ORDER,
    ORDER_PATH,
    PRICE_PATH,
    PUBLIC,
    TICKER_24HR_PATH,
    BinanceClientBase,
    ExchangeAdapter,
    Params,
    classify_error,
    decode_body,
    parse_price,
)
from .logging_setup import logger
from .models import OrderRequest, OrderResult, TickerStats


class BinanceAdapter(BinanceClientBase, ExchangeAdapter):
    """Blocking Binance spot adapter built on ``requests``.

    Features:
    - HMAC-SHA256 query signing with a fresh timestamp per attempt.
    - Bounded timeout on every call.
    - Idempotent reads (GET) retry on transport errors, 5xx and 429 with
      jittered exponential backoff, honouring ``Retry-After``.
    - Order writes (POST/DELETE) are never retried; the caller decides.

    Used by the operational CLI tools; the API server uses the async variant.
    """

    def __init__(self, api_key: str, secret: str, **kwargs):
        super().__init__(api_key, secret, **kwargs)
        self.session = requests.Session()

    def close(self) -> None:
        self.session.close()

    def _request(self, method: str, path: str, params: Params = (), *, signed: bool, kind: str, attempt: int = 0):
        if self.rate_limiter and not self.rate_limiter.wait_if_needed(path, max_wait=self.timeout):
            raise RateLimitError(f"Client-side rate limit for {path} not lifted within {self.timeout}s")

        url, headers = self._prepare(path, params, signed)
        error: ExchangeError
        try:
            resp = self.session.request(method, url, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            error = NetworkError(f"Request timeout: {e}", timeout=True)
            error.__cause__ = e
        except requests.exceptions.RequestException as e:
            error = NetworkError(f"Request failed: {e}")
            error.__cause__ = e
        else:
            if resp.ok:
                try:
                    return decode_body(resp.status_code, resp.text, kind)
                except NetworkError as e:
                    error = e
            else:
                error = classify_error(
                    resp.status_code,
                    self._error_payload(resp),
                    kind,
                    retry_after=self._get_retry_after(resp.headers),
                )

        if self._should_retry(method, error, attempt):
            delay = self._retry_delay(error, attempt)
            logger.warning(f"{method} {path} failed ({error.message}); retry {attempt + 1}/{self.max_retries} in {delay:.2f}s")
            time.sleep(delay)
            return self._request(method, path, params, signed=signed, kind=kind, attempt=attempt + 1)
        raise error

    @staticmethod
    def _error_payload(resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            return resp.text

    def get_price(self, symbol: str) -> Decimal:
        data = self._request("GET", PRICE_PATH, [("symbol", symbol)], signed=False, kind=PUBLIC)
        return parse_price(data)

    def get_24hr_stats(self, symbol: str) -> TickerStats:
        data = self._request("GET", TICKER_24HR_PATH, [("symbol", symbol)], signed=False, kind=PUBLIC)
        return TickerStats.from_response(data)

    def get_account(self) -> Dict[str, Any]:
        return self._request("GET", ACCOUNT_PATH, signed=True, kind=ACCOUNT)

    def place_order(self, symbol: str, side: str, quantity: Any, client_order_id: Optional[str] = None) -> OrderResult:
        order = OrderRequest.market(symbol, side, quantity, client_order_id)
        data = self._request("POST", ORDER_PATH, order.params(), signed=True, kind=ORDER)
        result = OrderResult.from_response(data)
        logger.info(f"Market order placed | symbol={symbol} side={order.side} qty={quantity} order_id={result.order_id} status={result.status}")
        return result

    def place_limit_order(self, symbol: str, side: str, quantity: Any, price: Any) -> OrderResult:
        data = self._request("POST", ORDER_PATH, self._limit_params(symbol, side, quantity, price), signed=True, kind=ORDER)
        result = OrderResult.from_response(data)
        logger.info(f"Limit order placed | symbol={symbol} side={side.upper()} qty={quantity} price={price} order_id={result.order_id}")
        return result

    def get_order(self, symbol: str, order_id: Any = None, *, orig_client_order_id: Optional[str] = None) -> OrderResult:
        params = [("symbol", symbol)] + self._order_ref(order_id, orig_client_order_id)
        return OrderResult.from_response(self._request("GET", ORDER_PATH, params, signed=True, kind=ORDER))

    def cancel_order(self, symbol: str, order_id: Any) -> OrderResult:
        params = [("symbol", symbol), ("orderId", order_id)]
        result = OrderResult.from_response(self._request("DELETE", ORDER_PATH, params, signed=True, kind=ORDER))
        logger.info(f"Order cancelled | symbol={symbol} order_id={order_id} status={result.status}")
        return result
