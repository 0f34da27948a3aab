#!/usr/bin/env python
"""Trade history and P&L reporter.

Usage:
    python scripts/trade_history.py --db tradebot.db list [--symbol BTC/USDT] [--limit 20]
    python scripts/trade_history.py --db tradebot.db summary
    python scripts/trade_history.py --db tradebot.db positions
"""
import argparse
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from tradebot.persistence_sqlite import TradeStore
from tradebot.stats import summarize_trades


def list_trades(store, limit=50, symbol=None):
    """List stored trades, newest first."""
    trades = store.list_trades(limit=limit, symbol=symbol)
    if not trades:
        print("No trades found")
        return

    print(f"{'ID':<6} {'Time':<26} {'Mode':<6} {'Side':<5} {'Symbol':<12} {'Price':<14} {'Qty':<12} {'Order':<14} {'P&L':<10}")
    print("-" * 112)
    for t in trades:
        print(
            f"{t['id']:<6} {t['created_at'][:26]:<26} {t['mode']:<6} {t['trade_type']:<5} {t['symbol']:<12} "
            f"{t['price']:<14} {t['quantity']:<12} {str(t['exchange_order_id'] or '-'):<14} {str(t['profit_loss'] or '-'):<10}"
        )
    print(f"\nTotal shown: {len(trades)}")


def summary(store):
    """Show aggregate statistics across all trades."""
    stats = summarize_trades(store.all_trades())
    if not stats["total_trades"]:
        print("No trades found")
        return

    print("\n=== Trading Summary ===")
    print(f"Total Trades: {stats['total_trades']} (buy {stats['buy_trades']}, sell {stats['sell_trades']})")
    print(f"Total Profit: ${stats['total_profit']}")
    print(f"Total Loss: ${stats['total_loss']}")
    print(f"Win Rate: {stats['win_rate']}% of {stats['completed_trades']} closed")
    print(f"Profit Factor: {stats['profit_factor']}")
    print(f"Avg Confidence: {stats['avg_confidence'] or 'N/A'}")
    print(f"Last Trade: {stats['last_trade_time']}")


def list_positions(store):
    positions = store.list_positions()
    if not positions:
        print("No open positions")
        return

    print(f"{'Symbol':<12} {'Entry':<14} {'Current':<14} {'Qty':<12} {'Stop':<12} {'Target':<12} {'Unrealized':<12}")
    print("-" * 92)
    for p in positions:
        print(
            f"{p['symbol']:<12} {p['entry_price']:<14} {str(p['current_price'] or '-'):<14} {p['quantity']:<12} "
            f"{str(p['stop_loss'] or '-'):<12} {str(p['take_profit'] or '-'):<12} {str(p['unrealized_pnl'] or '-'):<12}"
        )


def main():
    parser = argparse.ArgumentParser(description="Trade history reporter")
    parser.add_argument("--db", required=True, help="Path to trade database")
    parser.add_argument("--password", default=os.getenv("TRADEBOT_DB_PASSWORD"), help="sqlcipher password (encrypted databases)")
    sub = parser.add_subparsers(dest="cmd")

    list_p = sub.add_parser("list", help="List trades")
    list_p.add_argument("--limit", type=int, default=50)
    list_p.add_argument("--symbol", help="Filter by symbol as stored (e.g. BTC/USDT)")
    sub.add_parser("summary", help="Show P&L summary")
    sub.add_parser("positions", help="List open positions")

    args = parser.parse_args()

    if not Path(args.db).exists():
        print(f"Database not found: {args.db}")
        sys.exit(1)

    store = TradeStore(args.db, password=args.password)
    try:
        if args.cmd == "list":
            list_trades(store, limit=args.limit, symbol=args.symbol)
        elif args.cmd == "summary":
            summary(store)
        elif args.cmd == "positions":
            list_positions(store)
        else:
            parser.print_help()
    finally:
        store.close()


if __name__ == "__main__":
    main()
