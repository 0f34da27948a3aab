"""End-to-end demo of the trade execution flow.

Shows:
1. Structured logging with secret redaction
2. Paper-only gating when no credentials are configured
3. Live execution against an in-memory exchange
4. An ambiguous live order and its reconciliation
5. Persisting trades and printing the summary

Runs offline; no exchange credentials are needed.
"""
import asyncio
import sys
import tempfile
from pathlib import Path

# Add parent directory to path so we can import tradebot
sys.path.insert(0, str(Path(__file__).parent.parent))

from tradebot.errors import AmbiguousExecution, GateRejected, NetworkError
from tradebot.exchange import InMemoryExchange
from tradebot.execution import TradeExecutionOrchestrator
from tradebot.gate import ExecutionGate
from tradebot.logging_setup import logger, setup_logging
from tradebot.models import TradeRequest
from tradebot.persistence_sqlite import TradeStore
from tradebot.stats import summarize_trades


class FlakyExchange(InMemoryExchange):
    """Fills the order but loses the response, like a timeout after the exchange accepted it."""

    def place_order(self, symbol, side, quantity, client_order_id=None):
        super().place_order(symbol, side, quantity, client_order_id)
        raise NetworkError("Request timeout: read timed out", timeout=True)


async def main():
    setup_logging(log_file=None, level="INFO", enable_console=True, redact=["demo-secret"])
    logger.info("=== Trade Execution Demo ===")

    with tempfile.TemporaryDirectory() as tmp:
        store = TradeStore(Path(tmp) / "demo.db")
        try:
            # Step 1: no client -> paper only
            paper_only = TradeExecutionOrchestrator(ExecutionGate(None))
            request = TradeRequest("BTC/USDT", "buy", "50000", "0.002", confidence=72, strategy="demo")
            outcome = await paper_only.execute(request)
            store.save_trade(request, outcome)

            try:
                await paper_only.execute(TradeRequest("BTC/USDT", "BUY", "50000", "0.002", mode="live"))
            except GateRejected as e:
                logger.info(f"Live request refused: {e.message}")

            # Step 2: live against an in-memory exchange
            exchange = InMemoryExchange({"BTCUSDT": "50000", "ETHUSDT": "3000"})
            live = TradeExecutionOrchestrator(ExecutionGate(exchange), exchange)
            request = TradeRequest("ETH/USDT", "sell", "3000", "0.5", confidence=64, strategy="demo", mode="live")
            outcome = await live.execute(request)
            trade_id = store.save_trade(request, outcome)
            store.set_profit_loss(trade_id, "41.50")
            logger.info(f"Live order {outcome.order.order_id} {outcome.order.status}")

            # Step 3: response lost after the exchange filled the order
            flaky = FlakyExchange({"BTCUSDT": "50000"})
            orchestrator = TradeExecutionOrchestrator(ExecutionGate(flaky), flaky)
            request = TradeRequest("BTC/USDT", "BUY", "50000", "0.001", mode="live")
            try:
                await orchestrator.execute(request)
            except AmbiguousExecution as e:
                logger.warning(f"Outcome unknown, reconciling client_order_id={e.client_order_id}")
                resolved = await orchestrator.reconcile(request, e.client_order_id)
                if resolved is not None:
                    store.save_trade(request, resolved)
                    logger.info(f"Reconciled: order {resolved.order.order_id} {resolved.order.status}")

            # Step 4: summary
            stats = summarize_trades(store.all_trades())
            logger.info(f"Trades recorded: {stats['total_trades']} win_rate={stats['win_rate']}% profit_factor={stats['profit_factor']}")
            logger.info("=== Demo Complete ===")
        finally:
            store.close()


if __name__ == "__main__":
    asyncio.run(main())
