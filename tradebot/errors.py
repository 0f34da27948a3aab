"""Error taxonomy for exchange access and trade execution.

Hierarchy:
    TradeBotError (base)
      ConfigurationError   credentials malformed/absent at construction
      InvalidTradeRequest  caller supplied an unusable trade
      GateRejected         execution gate denied the request
      ExchangeError        anything coming back from the exchange
        AuthError          signature / API key rejected
        OrderRejected      authenticated, but the order was refused
          OrderNotFound    exchange has no such order
        NetworkError       transport failure, timeout, 5xx or garbled 2xx body
          RateLimitError   429/418 or client-side throttle; request not accepted
      AmbiguousExecution   order write sent, outcome unknown
      RecordNotFound       no stored trade/position for the key
      RecordExists         position already open for the symbol

Every error carries structured detail so the HTTP layer can surface the
exchange code and message instead of a flattened string.
"""
from typing import Any, Dict, Optional


class TradeBotError(Exception):
    """Base error. ``client_error`` tells whether the caller caused it."""

    client_error = False
    http_status = 500

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = dict(detail or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "type": type(self).__name__,
            "client_error": self.client_error,
            "detail": self.detail,
        }


class ConfigurationError(TradeBotError, ValueError):
    http_status = 503


class InvalidTradeRequest(TradeBotError, ValueError):
    client_error = True
    http_status = 400


class GateRejected(TradeBotError):
    """Execution gate said no. Always a client error, never an exchange call."""

    client_error = True
    http_status = 400


class ExchangeError(TradeBotError):
    """Error reported by (or while talking to) the exchange.

    Attributes:
        status: HTTP status code, None when no response was received
        code: exchange error code (e.g. -2010), None when absent
        payload: raw decoded error body, if any
    """

    http_status = 502

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[int] = None,
        payload: Any = None,
        detail: Optional[Dict[str, Any]] = None,
    ):
        merged = {"status": status, "code": code, "exchange_message": message}
        if payload is not None:
            merged["payload"] = payload
        merged.update(detail or {})
        super().__init__(message, detail=merged)
        self.status = status
        self.code = code
        self.payload = payload


class AuthError(ExchangeError):
    """Signature or API key rejected. Retrying the same request fails identically."""

    client_error = True
    http_status = 401


class OrderRejected(ExchangeError):
    """The exchange authenticated the request and refused it (balance, filters...)."""

    client_error = True
    http_status = 422


class OrderNotFound(OrderRejected):
    http_status = 404


class NetworkError(ExchangeError):
    """Transport failure, timeout, or a 5xx whose execution status is unknown.

    Safe to retry for idempotent reads only.
    """

    def __init__(self, message: str, *, timeout: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.timeout = timeout
        self.detail["timeout"] = timeout


class RateLimitError(NetworkError):
    """Raised when the exchange rate limits us and backoff is exhausted or not allowed.

    Transient like any NetworkError, but the exchange did not accept the
    request, so an order write that hits it is known not to have executed.
    """

    http_status = 429

    def __init__(self, message: str, *, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        self.detail["retry_after"] = retry_after


class AmbiguousExecution(TradeBotError):
    """A live order was sent but its outcome was never confirmed.

    Must be resolved through an order query, never by re-sending the order.
    """

    http_status = 504

    def __init__(
        self,
        message: str,
        *,
        symbol: str,
        side: str,
        quantity: Any,
        client_order_id: Optional[str] = None,
        cause: Optional[ExchangeError] = None,
    ):
        detail = {
            "symbol": symbol,
            "side": side,
            "quantity": str(quantity),
            "client_order_id": client_order_id,
            "reconcilable": client_order_id is not None,
        }
        if cause is not None:
            detail["cause"] = cause.to_dict()
        super().__init__(message, detail=detail)
        self.symbol = symbol
        self.side = side
        self.quantity = quantity
        self.client_order_id = client_order_id
        self.cause = cause


class RecordNotFound(TradeBotError):
    """No stored trade or position matches the lookup."""

    client_error = True
    http_status = 404


class RecordExists(TradeBotError):
    """A position for this symbol is already open."""

    client_error = True
    http_status = 409
