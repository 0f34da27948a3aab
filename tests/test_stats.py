from decimal import Decimal

from tradebot.stats import profit_factor, summarize_trades


def test_profit_factor():
    assert profit_factor(Decimal("100"), Decimal("-40")) == "2.50"
    assert profit_factor(Decimal("10"), Decimal("0")) == "Infinity"
    assert profit_factor(Decimal("0"), Decimal("0")) == "0"


def test_summarize_empty():
    summary = summarize_trades([])
    assert summary["total_trades"] == 0
    assert summary["win_rate"] == "0.00"
    assert summary["avg_confidence"] is None
    assert summary["last_trade_time"] is None
    assert summary["profit_factor"] == "0"


def test_summarize_trades():
    trades = [
        {"trade_type": "BUY", "profit_loss": None, "confidence": "80", "created_at": "2024-01-01T00:00:00+00:00"},
        {"trade_type": "SELL", "profit_loss": "150", "confidence": "70", "created_at": "2024-01-03T00:00:00+00:00"},
        {"trade_type": "SELL", "profit_loss": "-50", "confidence": None, "created_at": "2024-01-02T00:00:00+00:00"},
        {"trade_type": "buy", "profit_loss": "0", "created_at": "2024-01-02T12:00:00+00:00"},
    ]

    summary = summarize_trades(trades)

    assert summary["total_trades"] == 4
    assert summary["buy_trades"] == 2
    assert summary["sell_trades"] == 2
    assert summary["completed_trades"] == 3
    assert summary["total_profit"] == "150"
    assert summary["total_loss"] == "-50"
    assert summary["win_rate"] == "33.33"
    assert summary["profit_factor"] == "3.00"
    assert summary["avg_confidence"] == "75.00"
    assert summary["last_trade_time"] == "2024-01-03T00:00:00+00:00"
