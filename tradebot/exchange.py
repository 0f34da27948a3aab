"""
Exchange adapter interface and the Binance spot REST protocol shared by the
blocking and async clients.

Protocol summary (one base URL per client, fixed at construction):

    GET    /api/v3/ticker/price  symbol=<S>                                 public
    GET    /api/v3/ticker/24hr   symbol=<S>                                 public
    GET    /api/v3/account       timestamp=<t>                              signed
    POST   /api/v3/order         symbol&side&type[&timeInForce]&quantity[&price][&newClientOrderId]&timestamp  signed
    GET    /api/v3/order         symbol&(orderId|origClientOrderId)&timestamp signed
    DELETE /api/v3/order         symbol&orderId&timestamp                   signed

Signed requests append ``&signature=<hmac hex>`` computed over the query string
exactly as sent, and carry the API key in the ``X-MBX-APIKEY`` header. The
timestamp is taken at call time for every attempt; a signed query is never
reused.
"""
import json
import random
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import (
    AuthError,
    ConfigurationError,
    ExchangeError,
    NetworkError,
    OrderNotFound,
    OrderRejected,
    RateLimitError,
)
from .models import OrderRequest, OrderResult, TickerStats, format_number
from .rate_limit_policy import RateLimitManager
from .signer import Signer

PRODUCTION_URL = "https://api.binance.com"
TESTNET_URL = "https://testnet.binance.vision"
API_KEY_HEADER = "X-MBX-APIKEY"

PRICE_PATH = "/api/v3/ticker/price"
TICKER_24HR_PATH = "/api/v3/ticker/24hr"
ACCOUNT_PATH = "/api/v3/account"
ORDER_PATH = "/api/v3/order"

# Endpoint kinds drive error classification.
PUBLIC = "public"
ACCOUNT = "account"
ORDER = "order"

# -1002 unauthorized, -1021 timestamp outside recvWindow, -1022 bad signature,
# -2014 bad API-key format, -2015 invalid key/IP/permissions
AUTH_ERROR_CODES = frozenset({-1002, -1021, -1022, -2014, -2015})
ORDER_NOT_FOUND_CODE = -2013

Params = List[Tuple[str, Any]]


def base_url_for(testnet: bool) -> str:
    return TESTNET_URL if testnet else PRODUCTION_URL


def build_query(params: Iterable[Tuple[str, Any]]) -> str:
    """Join params in the given order. No sorting, no re-encoding."""
    return "&".join(f"{key}={value}" for key, value in params)


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def classify_error(
    status: int,
    payload: Any,
    kind: str,
    retry_after: Optional[float] = None,
) -> ExchangeError:
    """Map a non-2xx exchange response to the error taxonomy.

    Args:
        status: HTTP status code
        payload: decoded body ({"code": ..., "msg": ...} on Binance) or raw text
        kind: PUBLIC, ACCOUNT or ORDER
        retry_after: seconds from the Retry-After header, if present

    Returns:
        The ExchangeError subclass instance to raise
    """
    code = None
    message = f"HTTP {status}"
    if isinstance(payload, Mapping):
        code = payload.get("code")
        message = payload.get("msg") or message
    elif payload:
        message = f"HTTP {status}: {payload}"

    kwargs = {"status": status, "code": code, "payload": payload}
    if status in (418, 429):
        return RateLimitError(message, retry_after=retry_after, **kwargs)
    if status >= 500:
        # 5xx on a write means execution status is unknown
        return NetworkError(message, **kwargs)
    if kind == PUBLIC:
        return NetworkError(message, **kwargs)
    if status in (401, 403) or code in AUTH_ERROR_CODES:
        return AuthError(message, **kwargs)
    if kind == ACCOUNT:
        if code is not None:
            return AuthError(message, **kwargs)
        return NetworkError(message, **kwargs)
    if code == ORDER_NOT_FOUND_CODE:
        return OrderNotFound(message, **kwargs)
    if code is not None:
        return OrderRejected(message, **kwargs)
    return NetworkError(message, **kwargs)


def decode_body(status: int, text: str, kind: str) -> Any:
    """Decode a 2xx body. Every endpoint answers with JSON; anything else is a NetworkError.

    An empty or garbled body on an order write leaves the execution status unknown.
    """
    what = "order response" if kind == ORDER else "response"
    if not text or not text.strip():
        raise NetworkError(f"Malformed {what}: empty body", status=status)
    try:
        return json.loads(text)
    except ValueError:
        raise NetworkError(f"Malformed {what}: body is not JSON", status=status, payload=text[:200])


def parse_price(payload: Any) -> Decimal:
    try:
        return Decimal(str(payload["price"]))
    except (KeyError, TypeError, ArithmeticError):
        raise NetworkError("Malformed price response", payload=payload)


class ExchangeAdapter(ABC):
    """Abstract exchange adapter. Async clients expose the same methods as coroutines."""

    live_capable = False

    @abstractmethod
    def get_price(self, symbol: str) -> Decimal:
        """Current price for an exchange-form symbol."""

    @abstractmethod
    def get_account(self) -> Dict[str, Any]:
        """Account snapshot (balances, permissions)."""

    @abstractmethod
    def place_order(self, symbol: str, side: str, quantity: Any, client_order_id: Optional[str] = None) -> OrderResult:
        """Place a MARKET order. Never retried on failure."""

    @abstractmethod
    def place_limit_order(self, symbol: str, side: str, quantity: Any, price: Any) -> OrderResult:
        """Place a GTC LIMIT order."""

    @abstractmethod
    def get_order(self, symbol: str, order_id: Any = None, *, orig_client_order_id: Optional[str] = None) -> OrderResult:
        """Query an order by exchange id or by the client id it was placed with."""

    @abstractmethod
    def cancel_order(self, symbol: str, order_id: Any) -> OrderResult:
        """Cancel an open order."""

    @abstractmethod
    def get_24hr_stats(self, symbol: str) -> TickerStats:
        """24-hour ticker statistics."""


class BinanceClientBase:
    """Credentials, endpoint, signing and retry policy shared by both clients.

    Construction fails with ConfigurationError when the key or secret is empty,
    which is what keeps live trading disabled for a misconfigured process.
    """

    live_capable = True

    def __init__(
        self,
        api_key: str,
        secret: str,
        *,
        testnet: bool = False,
        base_url: Optional[str] = None,
        timeout: float = 10,
        max_retries: int = 3,
        max_backoff_seconds: float = 30.0,
        rate_limiter: Optional[RateLimitManager] = None,
    ):
        if not api_key or not api_key.strip():
            raise ConfigurationError("API key is empty")
        self.api_key = api_key
        self.signer = Signer(secret)
        self.testnet = testnet
        self.base_url = (base_url or base_url_for(testnet)).rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.max_backoff_seconds = max_backoff_seconds
        self.rate_limiter = rate_limiter

    @classmethod
    def from_credentials(cls, credentials, **kwargs):
        """Create a client from BinanceCredentials (see ``tradebot.secrets``)."""
        return cls(api_key=credentials.api_key, secret=credentials.api_secret, **kwargs)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self.base_url!r}, testnet={self.testnet})"

    def _prepare(self, path: str, params: Params, signed: bool) -> Tuple[str, Dict[str, str]]:
        """Build the URL and headers for one attempt. Signed queries get a fresh timestamp."""
        if signed:
            query = build_query(list(params) + [("timestamp", timestamp_ms())])
            query = f"{query}&signature={self.signer.sign(query)}"
            headers = {API_KEY_HEADER: self.api_key}
        else:
            query = build_query(params)
            headers = {}
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{query}"
        return url, headers

    @staticmethod
    def _order_ref(order_id: Any, orig_client_order_id: Optional[str]) -> Params:
        if (order_id is None) == (orig_client_order_id is None):
            raise ValueError("Provide exactly one of order_id or orig_client_order_id")
        if order_id is not None:
            return [("orderId", order_id)]
        return [("origClientOrderId", orig_client_order_id)]

    @staticmethod
    def _limit_params(symbol: str, side: str, quantity: Any, price: Any) -> Params:
        return OrderRequest.limit(symbol, side, quantity, price).params()

    @staticmethod
    def _jittered_backoff(attempt: int, base: float = 0.5, max_backoff: float = 30.0) -> float:
        """Exponential backoff capped at ``max_backoff`` with +/-25% jitter."""
        delay = min(base * (2 ** attempt), max_backoff)
        jitter = delay * 0.25 * (2 * random.random() - 1)
        return max(0.0, delay + jitter)

    @staticmethod
    def _get_retry_after(headers: Mapping[str, str]) -> Optional[float]:
        value = headers.get("Retry-After") if headers else None
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def _should_retry(self, method: str, error: ExchangeError, attempt: int) -> bool:
        # Only idempotent reads are retried; order writes surface every failure.
        if method != "GET" or attempt >= self.max_retries:
            return False
        return isinstance(error, NetworkError)

    def _retry_delay(self, error: ExchangeError, attempt: int) -> float:
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            return min(retry_after, self.max_backoff_seconds)
        return self._jittered_backoff(attempt, max_backoff=self.max_backoff_seconds)


class InMemoryExchange(ExchangeAdapter):
    """A simple adapter used for tests and demos; records calls and fills market orders instantly."""

    live_capable = True

    def __init__(self, prices: Optional[Dict[str, Any]] = None):
        self.prices = {k: Decimal(str(v)) for k, v in (prices or {}).items()}
        self.orders: Dict[int, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.failures: Dict[str, Exception] = {}
        self.next_id = 1

    def fail(self, method: str, error: Exception) -> None:
        """Make every subsequent call to ``method`` raise ``error``."""
        self.failures[method] = error

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, args))
        if method in self.failures:
            raise self.failures[method]

    def call_count(self, method: Optional[str] = None) -> int:
        if method is None:
            return len(self.calls)
        return sum(1 for name, _ in self.calls if name == method)

    def _store(self, order: OrderRequest, status: str) -> OrderResult:
        oid = self.next_id
        self.next_id += 1
        executed = order.quantity if status == "FILLED" else Decimal("0")
        payload = {
            "symbol": order.symbol,
            "orderId": oid,
            "clientOrderId": order.client_order_id or f"mem{oid}",
            "transactTime": timestamp_ms(),
            "origQty": format_number(order.quantity),
            "executedQty": format_number(executed),
            "status": status,
            "type": order.order_type,
            "side": order.side,
        }
        if order.price is not None:
            payload["price"] = format_number(order.price)
        self.orders[oid] = payload
        return OrderResult.from_response(payload)

    def get_price(self, symbol: str) -> Decimal:
        self._record("get_price", symbol)
        if symbol not in self.prices:
            raise NetworkError("Invalid symbol.", status=400, code=-1121)
        return self.prices[symbol]

    def get_account(self) -> Dict[str, Any]:
        self._record("get_account")
        return {"canTrade": True, "balances": []}

    def place_order(self, symbol: str, side: str, quantity: Any, client_order_id: Optional[str] = None) -> OrderResult:
        self._record("place_order", symbol, side, quantity)
        return self._store(OrderRequest.market(symbol, side, quantity, client_order_id), "FILLED")

    def place_limit_order(self, symbol: str, side: str, quantity: Any, price: Any) -> OrderResult:
        self._record("place_limit_order", symbol, side, quantity, price)
        return self._store(OrderRequest.limit(symbol, side, quantity, price), "NEW")

    def get_order(self, symbol: str, order_id: Any = None, *, orig_client_order_id: Optional[str] = None) -> OrderResult:
        self._record("get_order", symbol, order_id, orig_client_order_id)
        for payload in self.orders.values():
            if payload["symbol"] != symbol:
                continue
            if payload["orderId"] == order_id or (orig_client_order_id and payload["clientOrderId"] == orig_client_order_id):
                return OrderResult.from_response(payload)
        raise OrderNotFound("Order does not exist.", status=400, code=ORDER_NOT_FOUND_CODE)

    def cancel_order(self, symbol: str, order_id: Any) -> OrderResult:
        self._record("cancel_order", symbol, order_id)
        payload = self.orders.get(order_id)
        if payload is None or payload["symbol"] != symbol:
            raise OrderRejected("Unknown order sent.", status=400, code=-2011)
        payload["status"] = "CANCELED"
        return OrderResult.from_response(payload)

    def get_24hr_stats(self, symbol: str) -> TickerStats:
        self._record("get_24hr_stats", symbol)
        if symbol not in self.prices:
            raise NetworkError("Invalid symbol.", status=400, code=-1121)
        price = self.prices[symbol]
        return TickerStats.from_response({
            "symbol": symbol,
            "lastPrice": str(price),
            "highPrice": str(price),
            "lowPrice": str(price),
            "priceChange": "0",
            "priceChangePercent": "0",
        })
