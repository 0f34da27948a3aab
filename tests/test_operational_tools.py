"""Tests for operational CLI tools: order_manager, trade_history."""
import subprocess
import sys
from pathlib import Path

import pytest

from tradebot.exchange import InMemoryExchange
from tradebot.models import ExecutionOutcome, TradeMode, TradeRequest
from tradebot.persistence_sqlite import TradeStore

SCRIPTS = Path(__file__).resolve().parents[1] / "scripts"


def run_script(name, args):
    cmd = [sys.executable, str(SCRIPTS / name)] + args
    res = subprocess.run(cmd, capture_output=True, text=True, stdin=subprocess.DEVNULL)
    return res.returncode, res.stdout, res.stderr


@pytest.fixture
def trade_db(tmp_path: Path):
    """Create a trade database with a paper trade, a live trade and a position."""
    db_path = tmp_path / "trades.db"
    store = TradeStore(db_path)

    paper = TradeRequest("BTC/USDT", "BUY", "50000", "0.5", confidence=80)
    store.save_trade(paper, ExecutionOutcome(TradeMode.PAPER, None, paper.total_value, "BTCUSDT"), profit_loss="120")

    live = TradeRequest("ETH/USDT", "SELL", "3000", "1", confidence=60, mode="live")
    order = InMemoryExchange().place_order("ETHUSDT", "SELL", "1", client_order_id="tb-1")
    store.save_trade(live, ExecutionOutcome(TradeMode.LIVE, order, live.total_value, "ETHUSDT", "tb-1"), profit_loss="-40")

    store.create_position("BTC/USDT", "50000", "0.5", stop_loss="49000")
    store.close()
    return db_path


class TestOrderManager:
    """order_manager against the in-memory exchange."""

    def test_price(self):
        code, out, err = run_script("order_manager.py", ["--demo", "price", "BTC/USDT"])
        assert code == 0, err
        assert "BTCUSDT: 50000" in out

    def test_ticker(self):
        code, out, _ = run_script("order_manager.py", ["--demo", "ticker", "eth/usdt"])
        assert code == 0
        assert "=== ETHUSDT 24h ===" in out
        assert "Last:   3000" in out

    def test_account(self):
        code, out, _ = run_script("order_manager.py", ["--demo", "account"])
        assert code == 0
        assert "canTrade: True" in out

    def test_unknown_order_reports_error(self):
        code, out, _ = run_script("order_manager.py", ["--demo", "status", "BTCUSDT", "--order-id", "99"])
        assert code == 1
        assert "Error (OrderNotFound)" in out

    def test_status_requires_order_reference(self):
        code, _, err = run_script("order_manager.py", ["--demo", "status", "BTCUSDT"])
        assert code == 2
        assert "--order-id" in err


class TestTradeHistory:
    """trade_history against a populated database."""

    def test_list(self, trade_db):
        code, out, err = run_script("trade_history.py", ["--db", str(trade_db), "list"])
        assert code == 0, err
        assert "BTC/USDT" in out
        assert "ETH/USDT" in out
        assert "Total shown: 2" in out

    def test_list_filtered_by_symbol(self, trade_db):
        code, out, _ = run_script("trade_history.py", ["--db", str(trade_db), "list", "--symbol", "ETH/USDT"])
        assert code == 0
        assert "BTC/USDT" not in out
        assert "Total shown: 1" in out

    def test_summary(self, trade_db):
        code, out, _ = run_script("trade_history.py", ["--db", str(trade_db), "summary"])
        assert code == 0
        assert "Total Trades: 2 (buy 1, sell 1)" in out
        assert "Win Rate: 50.00% of 2 closed" in out
        assert "Profit Factor: 3.00" in out

    def test_positions(self, trade_db):
        code, out, _ = run_script("trade_history.py", ["--db", str(trade_db), "positions"])
        assert code == 0
        assert "BTC/USDT" in out
        assert "49000" in out

    def test_missing_database(self, tmp_path):
        code, out, _ = run_script("trade_history.py", ["--db", str(tmp_path / "nope.db"), "list"])
        assert code == 1
        assert "Database not found" in out
