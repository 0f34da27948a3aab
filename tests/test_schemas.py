from decimal import Decimal

import pytest
from pydantic import ValidationError

from tradebot.schemas import PositionCreate, PositionUpdate, TradeCreate, validation_errors


def test_trade_create_to_request():
    body = TradeCreate(symbol=" BTC/USD ", trade_type="buy", price="50000", quantity="0.1", mode="live")
    request = body.to_trade_request()

    assert request.symbol == "BTC/USD"
    assert request.trade_type == "BUY"
    assert request.price == Decimal("50000")
    assert request.quantity == Decimal("0.1")
    assert request.mode == "live"


def test_trade_create_defaults_to_paper():
    assert TradeCreate(symbol="ETHUSDT", trade_type="SELL", price=1, quantity=1).mode == "paper"


def test_trade_create_keeps_unknown_mode_for_gate():
    assert TradeCreate(symbol="ETHUSDT", trade_type="SELL", price=1, quantity=1, mode="margin").mode == "margin"


@pytest.mark.parametrize(
    "body",
    [
        {"trade_type": "BUY", "price": 1, "quantity": 1},
        {"symbol": "BTCUSDT", "trade_type": "HOLD", "price": 1, "quantity": 1},
        {"symbol": "BTCUSDT", "trade_type": "BUY", "price": 0, "quantity": 1},
        {"symbol": "BTCUSDT", "trade_type": "BUY", "price": 1, "quantity": -1},
        {"symbol": "BTCUSDT", "trade_type": "BUY", "price": "abc", "quantity": 1},
    ],
)
def test_trade_create_rejects(body):
    with pytest.raises(ValidationError):
        TradeCreate(**body)


def test_validation_errors_are_flat():
    with pytest.raises(ValidationError) as exc:
        TradeCreate(symbol="BTCUSDT", trade_type="HOLD", price=1, quantity=1)
    errors = validation_errors(exc.value)
    assert errors[0]["field"] == "trade_type"
    assert "BUY or SELL" in errors[0]["message"]


def test_position_create():
    body = PositionCreate(symbol="BTC/USD", entry_price="50000", quantity="0.5")
    assert body.stop_loss is None
    with pytest.raises(ValidationError):
        PositionCreate(symbol="BTC/USD", entry_price=0, quantity=1)


def test_position_update_changes_omit_unset():
    assert PositionUpdate(current_price="51000").changes() == {"current_price": Decimal("51000")}
    assert PositionUpdate().changes() == {}
