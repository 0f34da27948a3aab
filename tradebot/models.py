"""Domain types for trade requests, exchange orders and execution outcomes.

Prices and quantities are Decimal throughout; values arriving as float or str
are converted through ``str`` so that ``0.1`` stays ``0.1``.

Two symbol representations exist and must not be conflated:
    - human-readable, as supplied by the caller and persisted ("BTC/USD")
    - exchange form, used only on the wire ("BTCUSD")
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import InvalidTradeRequest, NetworkError

SYMBOL_SEPARATORS = ("/", "-", "_", " ")
SIDES = ("BUY", "SELL")
ORDER_TYPES = ("MARKET", "LIMIT")


class TradeMode(str, Enum):
    PAPER = "paper"
    LIVE = "live"


def normalize_symbol(symbol: str) -> str:
    """Convert a human-readable symbol to exchange form.

    Idempotent: ``normalize_symbol(normalize_symbol(s)) == normalize_symbol(s)``.

    >>> normalize_symbol("BTC/USD")
    'BTCUSD'
    >>> normalize_symbol("ethusdt")
    'ETHUSDT'
    """
    out = symbol.strip()
    for sep in SYMBOL_SEPARATORS:
        out = out.replace(sep, "")
    return out.upper()


def to_decimal(value: Any, name: str = "value") -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise InvalidTradeRequest(f"{name} must be a number", detail={name: value})
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidTradeRequest(f"{name} must be a number", detail={name: str(value)})


def format_number(value: Any) -> str:
    """Render a number for a query string: plain notation, never exponent form."""
    return format(to_decimal(value), "f")


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    return Decimal(str(value))


@dataclass
class TradeRequest:
    """A caller-supplied trade, before persistence.

    Attributes:
        symbol: human-readable symbol, preserved for the trade record
        trade_type: BUY or SELL (any case)
        price: reference price used for ``total_value``
        quantity: base-asset quantity
        confidence: opaque score, passed through
        strategy: opaque label, passed through
        mode: "paper" or "live"; anything else is rejected by the gate
    """

    symbol: str
    trade_type: str
    price: Decimal
    quantity: Decimal
    confidence: Optional[float] = None
    strategy: Optional[str] = None
    mode: str = TradeMode.PAPER.value

    def __post_init__(self):
        self.price = to_decimal(self.price, "price")
        self.quantity = to_decimal(self.quantity, "quantity")

    @property
    def side(self) -> str:
        return self.trade_type.upper()

    @property
    def exchange_symbol(self) -> str:
        return normalize_symbol(self.symbol)

    @property
    def total_value(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class OrderRequest:
    """An order as the exchange will see it.

    ``params()`` yields the fields in wire order; the signature covers exactly
    that order, so it must never be rearranged.
    """

    symbol: str
    side: str
    quantity: Decimal
    order_type: str = "MARKET"
    price: Optional[Decimal] = None
    time_in_force: Optional[str] = None
    client_order_id: Optional[str] = None

    def __post_init__(self):
        if self.side not in SIDES:
            raise InvalidTradeRequest(f"side must be BUY or SELL, got {self.side!r}")
        if self.order_type not in ORDER_TYPES:
            raise InvalidTradeRequest(f"unsupported order type {self.order_type!r}")
        if self.order_type == "LIMIT" and self.price is None:
            raise InvalidTradeRequest("LIMIT orders require a price")
        if to_decimal(self.quantity, "quantity") <= 0:
            raise InvalidTradeRequest("quantity must be positive", detail={"quantity": str(self.quantity)})

    @classmethod
    def market(cls, symbol: str, side: str, quantity: Any, client_order_id: Optional[str] = None) -> "OrderRequest":
        return cls(symbol=symbol, side=side.upper(), quantity=to_decimal(quantity, "quantity"), client_order_id=client_order_id)

    @classmethod
    def limit(cls, symbol: str, side: str, quantity: Any, price: Any, time_in_force: str = "GTC") -> "OrderRequest":
        return cls(
            symbol=symbol,
            side=side.upper(),
            quantity=to_decimal(quantity, "quantity"),
            order_type="LIMIT",
            price=to_decimal(price, "price"),
            time_in_force=time_in_force,
        )

    def params(self) -> List[Tuple[str, str]]:
        out = [("symbol", self.symbol), ("side", self.side), ("type", self.order_type)]
        if self.order_type == "LIMIT":
            out.append(("timeInForce", self.time_in_force or "GTC"))
        out.append(("quantity", format_number(self.quantity)))
        if self.order_type == "LIMIT":
            out.append(("price", format_number(self.price)))
        if self.client_order_id:
            out.append(("newClientOrderId", self.client_order_id))
        return out


@dataclass
class OrderResult:
    """Exchange response to an order placement, query or cancel."""

    order_id: Any
    status: Optional[str]
    symbol: Optional[str]
    side: Optional[str]
    quantity: Optional[Decimal]
    executed_qty: Optional[Decimal] = None
    client_order_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "OrderResult":
        if not isinstance(payload, Mapping):
            raise NetworkError("Malformed order response", payload=payload)
        return cls(
            order_id=payload.get("orderId"),
            status=payload.get("status"),
            symbol=payload.get("symbol"),
            side=payload.get("side"),
            quantity=_optional_decimal(payload.get("origQty")),
            executed_qty=_optional_decimal(payload.get("executedQty")),
            client_order_id=payload.get("clientOrderId") or payload.get("origClientOrderId"),
            raw=payload,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "status": self.status,
            "symbol": self.symbol,
            "side": self.side,
            "quantity": str(self.quantity) if self.quantity is not None else None,
            "executedQty": str(self.executed_qty) if self.executed_qty is not None else None,
            "clientOrderId": self.client_order_id,
            "raw": self.raw,
        }


@dataclass
class TickerStats:
    """24-hour rolling window statistics for one symbol."""

    symbol: str
    last_price: Optional[Decimal]
    price_change: Optional[Decimal]
    price_change_percent: Optional[Decimal]
    high_price: Optional[Decimal]
    low_price: Optional[Decimal]
    volume: Optional[Decimal]
    quote_volume: Optional[Decimal]
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, payload: Dict[str, Any]) -> "TickerStats":
        if not isinstance(payload, Mapping):
            raise NetworkError("Malformed ticker response", payload=payload)
        return cls(
            symbol=payload.get("symbol", ""),
            last_price=_optional_decimal(payload.get("lastPrice")),
            price_change=_optional_decimal(payload.get("priceChange")),
            price_change_percent=_optional_decimal(payload.get("priceChangePercent")),
            high_price=_optional_decimal(payload.get("highPrice")),
            low_price=_optional_decimal(payload.get("lowPrice")),
            volume=_optional_decimal(payload.get("volume")),
            quote_volume=_optional_decimal(payload.get("quoteVolume")),
            raw=payload,
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for key in ("last_price", "price_change", "price_change_percent", "high_price", "low_price", "volume", "quote_volume"):
            value = getattr(self, key)
            out[key] = str(value) if value is not None else None
        out["symbol"] = self.symbol
        return out


@dataclass
class ExecutionOutcome:
    """Result of one trade execution, ready to be persisted by the caller."""

    mode: TradeMode
    order: Optional[OrderResult]
    total_value: Decimal
    exchange_symbol: str
    client_order_id: Optional[str] = None
    reconciled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "order": self.order.to_dict() if self.order else None,
            "total_value": str(self.total_value),
            "exchange_symbol": self.exchange_symbol,
            "client_order_id": self.client_order_id,
            "reconciled": self.reconciled,
        }
