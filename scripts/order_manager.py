#!/usr/bin/env python
"""Exchange order CLI: prices, account, order status and cancellation.

Uses the blocking Binance client with credentials from the environment or
the credentials file (see tradebot.secrets). Public commands work without
credentials.

Usage:
    python scripts/order_manager.py --testnet price BTCUSDT
    python scripts/order_manager.py ticker BTC/USDT
    python scripts/order_manager.py account
    python scripts/order_manager.py status BTCUSDT --order-id 12345
    python scripts/order_manager.py status BTCUSDT --client-order-id tb-0f3c...
    python scripts/order_manager.py cancel BTCUSDT 12345
"""
import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from tradebot.binance_adapter import BinanceAdapter
from tradebot.errors import ConfigurationError, TradeBotError
from tradebot.exchange import InMemoryExchange
from tradebot.logging_setup import setup_logging
from tradebot.models import normalize_symbol
from tradebot.secrets import load_credentials

PUBLIC_ONLY = "public-only"


def make_client(args):
    """Build the blocking client; public commands fall back to a placeholder key."""
    try:
        creds = load_credentials(args.credentials)
        return BinanceAdapter.from_credentials(creds, testnet=args.testnet)
    except ConfigurationError:
        if args.cmd in ("price", "ticker"):
            return BinanceAdapter(PUBLIC_ONLY, PUBLIC_ONLY, testnet=args.testnet)
        raise


def show_price(client, symbol):
    exchange_symbol = normalize_symbol(symbol)
    print(f"{exchange_symbol}: {client.get_price(exchange_symbol)}")


def show_ticker(client, symbol):
    stats = client.get_24hr_stats(normalize_symbol(symbol))
    print(f"\n=== {stats.symbol} 24h ===")
    print(f"Last:   {stats.last_price}")
    print(f"Change: {stats.price_change} ({stats.price_change_percent}%)")
    print(f"High:   {stats.high_price}")
    print(f"Low:    {stats.low_price}")
    print(f"Volume: {stats.volume}")


def show_account(client):
    account = client.get_account()
    balances = [b for b in account.get("balances", []) if b.get("free") not in (None, "0", "0.00000000") or b.get("locked") not in (None, "0", "0.00000000")]
    print(f"canTrade: {account.get('canTrade')}")
    if not balances:
        print("No non-zero balances")
        return
    print(f"{'Asset':<10} {'Free':<20} {'Locked':<20}")
    print("-" * 50)
    for b in balances:
        print(f"{b.get('asset', '?'):<10} {b.get('free', '0'):<20} {b.get('locked', '0'):<20}")


def show_order(client, symbol, order_id=None, client_order_id=None):
    order = client.get_order(normalize_symbol(symbol), order_id, orig_client_order_id=client_order_id)
    print(json.dumps(order.to_dict(), indent=2, default=str))


def cancel_order(client, symbol, order_id):
    order = client.cancel_order(normalize_symbol(symbol), order_id)
    print(f"Order {order.order_id} on {order.symbol}: {order.status}")


def run(client, args):
    if args.cmd == "price":
        show_price(client, args.symbol)
    elif args.cmd == "ticker":
        show_ticker(client, args.symbol)
    elif args.cmd == "account":
        show_account(client)
    elif args.cmd == "status":
        show_order(client, args.symbol, args.order_id, args.client_order_id)
    elif args.cmd == "cancel":
        cancel_order(client, args.symbol, args.order_id)


def build_parser():
    parser = argparse.ArgumentParser(description="Exchange order CLI")
    parser.add_argument("--testnet", action="store_true", help="Use the Binance spot testnet")
    parser.add_argument("--credentials", help="Credentials JSON file (default: env / ~/.binance_config.json)")
    parser.add_argument("--demo", action="store_true", help="Run against an in-memory exchange")
    parser.add_argument("--verbose", action="store_true")

    sub = parser.add_subparsers(dest="cmd")
    for name in ("price", "ticker"):
        p = sub.add_parser(name)
        p.add_argument("symbol")
    sub.add_parser("account")
    status = sub.add_parser("status")
    status.add_argument("symbol")
    ref = status.add_mutually_exclusive_group(required=True)
    ref.add_argument("--order-id", type=int)
    ref.add_argument("--client-order-id")
    cancel = sub.add_parser("cancel")
    cancel.add_argument("symbol")
    cancel.add_argument("order_id", type=int)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.cmd:
        parser.print_help()
        return 0

    setup_logging(log_file=None, level="DEBUG" if args.verbose else "WARNING")
    try:
        client = InMemoryExchange({"BTCUSDT": "50000", "ETHUSDT": "3000"}) if args.demo else make_client(args)
        run(client, args)
    except TradeBotError as e:
        print(f"Error ({type(e).__name__}): {e.message}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
