import pytest

from tradebot.exchange import InMemoryExchange
from tradebot.gate import LIVE_UNAVAILABLE, UNKNOWN_MODE, Authorized, ExecutionGate, Rejected
from tradebot.models import TradeMode, TradeRequest


def _req(mode):
    return TradeRequest("BTC/USDT", "BUY", "100", "1", mode=mode)


class NotLiveCapable:
    live_capable = False


def test_no_client_is_paper_only():
    gate = ExecutionGate(None)
    assert gate.can_execute_live() is False
    assert gate.authorize(_req("paper")) == Authorized(TradeMode.PAPER)
    assert gate.authorize(_req("live")) == Rejected(LIVE_UNAVAILABLE)


def test_configured_client_allows_live():
    exchange = InMemoryExchange()
    gate = ExecutionGate(exchange)
    assert gate.can_execute_live() is True
    assert gate.authorize(_req("live")) == Authorized(TradeMode.LIVE)
    assert gate.authorize(_req("paper")) == Authorized(TradeMode.PAPER)
    # the gate only decides; it never talks to the exchange
    assert exchange.call_count() == 0


def test_client_without_live_capability():
    assert ExecutionGate(NotLiveCapable()).authorize(_req("live")) == Rejected(LIVE_UNAVAILABLE)


@pytest.mark.parametrize("mode", ["backtest", "", "LIVE", None])
def test_unknown_mode_rejected(mode):
    assert ExecutionGate(InMemoryExchange()).authorize(_req(mode)) == Rejected(UNKNOWN_MODE)


def test_enum_mode_accepted():
    assert ExecutionGate(InMemoryExchange()).authorize(_req(TradeMode.LIVE)) == Authorized(TradeMode.LIVE)


def test_rejection_reason_text():
    assert LIVE_UNAVAILABLE == "live trading unavailable: credentials not configured"
    assert UNKNOWN_MODE == "unknown mode"
