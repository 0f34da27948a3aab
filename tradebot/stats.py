"""Trade history statistics for the summary endpoint and CLI."""
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

TWO_PLACES = Decimal("0.01")


def _dec(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def profit_factor(total_profit: Decimal, total_loss: Decimal) -> str:
    """Gross profit over gross loss, as a two-decimal string.

    ``"Infinity"`` when there is profit and no loss, ``"0"`` when neither.
    """
    if total_loss != 0:
        return str((total_profit / abs(total_loss)).quantize(TWO_PLACES))
    return "Infinity" if total_profit > 0 else "0"


def summarize_trades(trades: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Aggregate stored trade rows.

    Args:
        trades: rows as returned by ``TradeStore.list_trades``

    Returns:
        Dict with counts, profit/loss totals, average confidence, last trade
        time, win rate (percent of trades with a recorded P&L that are
        positive) and profit factor. Decimals are rendered as strings.
    """
    total = buys = sells = 0
    total_profit = Decimal("0")
    total_loss = Decimal("0")
    confidences = []
    completed = wins = 0
    last_trade_time = None

    for trade in trades:
        total += 1
        side = (trade.get("trade_type") or "").upper()
        if side == "BUY":
            buys += 1
        elif side == "SELL":
            sells += 1

        pnl = _dec(trade.get("profit_loss"))
        if pnl is not None:
            completed += 1
            if pnl > 0:
                wins += 1
                total_profit += pnl
            elif pnl < 0:
                total_loss += pnl

        confidence = _dec(trade.get("confidence"))
        if confidence is not None:
            confidences.append(confidence)

        created_at = trade.get("created_at")
        if created_at and (last_trade_time is None or created_at > last_trade_time):
            last_trade_time = created_at

    win_rate = (Decimal(wins) / Decimal(completed) * 100) if completed else Decimal("0")
    avg_confidence = (sum(confidences) / len(confidences)) if confidences else None

    return {
        "total_trades": total,
        "buy_trades": buys,
        "sell_trades": sells,
        "total_profit": str(total_profit),
        "total_loss": str(total_loss),
        "avg_confidence": str(avg_confidence.quantize(TWO_PLACES)) if avg_confidence is not None else None,
        "last_trade_time": last_trade_time,
        "completed_trades": completed,
        "win_rate": str(win_rate.quantize(TWO_PLACES)),
        "profit_factor": profit_factor(total_profit, total_loss),
    }
