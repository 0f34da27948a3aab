"""
Pydantic request models for the REST API.

Bodies are validated here before anything reaches the orchestrator or the
store. ``mode`` is deliberately a free string: deciding whether a mode is
usable belongs to the execution gate, which answers "unknown mode".
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import SIDES, TradeMode, TradeRequest


class TradeCreate(BaseModel):
    """Body of ``POST /api/trades``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    symbol: str = Field(..., min_length=1, description="Human-readable pair, e.g. BTC/USDT")
    trade_type: str = Field(..., description="BUY or SELL, any case")
    price: Decimal = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    confidence: Optional[Decimal] = None
    strategy: Optional[str] = None
    mode: str = TradeMode.PAPER.value

    @field_validator("trade_type")
    @classmethod
    def _check_side(cls, v: str) -> str:
        if v.upper() not in SIDES:
            raise ValueError("trade_type must be BUY or SELL")
        return v.upper()

    def to_trade_request(self) -> TradeRequest:
        return TradeRequest(
            symbol=self.symbol,
            trade_type=self.trade_type,
            price=self.price,
            quantity=self.quantity,
            confidence=self.confidence,
            strategy=self.strategy,
            mode=self.mode,
        )


class PositionCreate(BaseModel):
    """Body of ``POST /api/positions``."""

    model_config = ConfigDict(str_strip_whitespace=True)

    symbol: str = Field(..., min_length=1)
    entry_price: Decimal = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None
    trailing_stop: Optional[Decimal] = None


class PositionUpdate(BaseModel):
    """Body of ``PUT /api/positions/{symbol}``; omitted fields stay unchanged."""

    current_price: Optional[Decimal] = None
    stop_loss: Optional[Decimal] = None
    take_profit: Optional[Decimal] = None
    trailing_stop: Optional[Decimal] = None
    unrealized_pnl: Optional[Decimal] = None

    def changes(self) -> Dict[str, Decimal]:
        return self.model_dump(exclude_none=True)


def validation_errors(exc: ValidationError) -> List[Dict[str, Any]]:
    """Flatten a pydantic error into JSON-safe ``{field, message}`` entries."""
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
