from contextlib import asynccontextmanager
from decimal import Decimal

import pytest
from aiohttp.test_utils import TestClient, TestServer

from tradebot.api_server import TradeBotServer, create_exchange
from tradebot.config import TradingConfig
from tradebot.errors import NetworkError
from tradebot.exchange import InMemoryExchange
from tradebot.gate import LIVE_UNAVAILABLE
from tradebot.persistence_sqlite import TradeStore
from tradebot.secrets import BinanceCredentials

PAPER_TRADE = {"symbol": "BTC/USD", "trade_type": "BUY", "price": "50000", "quantity": "0.1", "mode": "paper"}
LIVE_TRADE = {"symbol": "BTC/USDT", "trade_type": "buy", "price": "50000", "quantity": "0.01", "mode": "live"}


class LostResponseExchange(InMemoryExchange):
    """Fills the order, then the response never makes it back."""

    def place_order(self, symbol, side, quantity, client_order_id=None):
        super().place_order(symbol, side, quantity, client_order_id)
        raise NetworkError("Request timeout", timeout=True)


@asynccontextmanager
async def api(tmp_path, exchange=None):
    server = TradeBotServer(TradingConfig(), TradeStore(tmp_path / "api.db"), exchange=exchange)
    client = TestClient(TestServer(server.app))
    await client.start_server()
    try:
        yield client, server
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_health_and_config(tmp_path):
    async with api(tmp_path) as (client, _):
        resp = await client.get("/health")
        assert resp.status == 200
        assert (await resp.json())["status"] == "ok"

        config = (await (await client.get("/config")).json())["config"]
        assert config["exchangeConfigured"] is False
        assert config["liveTradingAvailable"] is False


@pytest.mark.asyncio
async def test_paper_trade_created(tmp_path):
    async with api(tmp_path) as (client, _):
        resp = await client.post("/api/trades", json=PAPER_TRADE)
        assert resp.status == 201
        body = await resp.json()
        assert body["mode"] == "paper"
        assert body["exchangeOrder"] is None
        assert body["trade"]["symbol"] == "BTC/USD"
        assert Decimal(body["trade"]["total_value"]) == Decimal("5000")

        listed = await (await client.get("/api/trades")).json()
        assert listed["count"] == 1

        trade_id = body["trade"]["id"]
        fetched = await (await client.get(f"/api/trades/{trade_id}")).json()
        assert fetched["trade"]["id"] == trade_id

        stats = await (await client.get("/api/trades/stats/summary")).json()
        assert stats["stats"]["total_trades"] == 1


@pytest.mark.asyncio
async def test_paper_trade_never_touches_exchange(tmp_path):
    exchange = InMemoryExchange()
    async with api(tmp_path, exchange) as (client, _):
        resp = await client.post("/api/trades", json=PAPER_TRADE)
        assert resp.status == 201
    assert exchange.call_count() == 0


@pytest.mark.asyncio
async def test_live_trade_without_credentials_rejected(tmp_path):
    async with api(tmp_path) as (client, server):
        resp = await client.post("/api/trades", json=LIVE_TRADE)
        assert resp.status == 400
        body = await resp.json()
        assert body["success"] is False
        assert body["type"] == "GateRejected"
        assert body["error"] == LIVE_UNAVAILABLE
        assert server.store.list_trades() == []


@pytest.mark.asyncio
async def test_unknown_mode_rejected(tmp_path):
    async with api(tmp_path, InMemoryExchange()) as (client, _):
        resp = await client.post("/api/trades", json={**PAPER_TRADE, "mode": "margin"})
        assert resp.status == 400
        assert (await resp.json())["error"] == "unknown mode"


@pytest.mark.asyncio
async def test_live_trade_executed(tmp_path):
    exchange = InMemoryExchange()
    async with api(tmp_path, exchange) as (client, _):
        resp = await client.post("/api/trades", json=LIVE_TRADE)
        assert resp.status == 201
        body = await resp.json()
        assert body["mode"] == "live"
        assert body["exchangeOrder"]["orderId"] == 1
        assert body["exchangeOrder"]["status"] == "FILLED"
        assert body["trade"]["exchange_order_id"] == "1"
        assert body["trade"]["symbol"] == "BTC/USDT"
        assert body["trade"]["exchange_symbol"] == "BTCUSDT"
    assert exchange.call_count("place_order") == 1


@pytest.mark.asyncio
async def test_exchange_rejection_surfaces_code(tmp_path):
    from tradebot.errors import OrderRejected

    exchange = InMemoryExchange()
    exchange.fail("place_order", OrderRejected("Account has insufficient balance", status=400, code=-2010))
    async with api(tmp_path, exchange) as (client, server):
        resp = await client.post("/api/trades", json=LIVE_TRADE)
        assert resp.status == 422
        body = await resp.json()
        assert body["detail"]["code"] == -2010
        assert server.store.list_trades() == []


@pytest.mark.asyncio
async def test_ambiguous_trade_then_reconciled(tmp_path):
    exchange = LostResponseExchange()
    async with api(tmp_path, exchange) as (client, server):
        resp = await client.post("/api/trades", json=LIVE_TRADE)
        assert resp.status == 504
        body = await resp.json()
        assert body["type"] == "AmbiguousExecution"
        client_order_id = body["detail"]["client_order_id"]
        assert server.store.get_pending_order(client_order_id).symbol == "BTC/USDT"
        assert server.store.list_trades() == []

        listed = await (await client.get("/api/trades/pending")).json()
        assert listed["count"] == 1
        assert listed["orders"][0]["client_order_id"] == client_order_id
        assert listed["orders"][0]["error"] == "Request timeout"

        resp = await client.post(f"/api/trades/reconcile/{client_order_id}")
        assert resp.status == 200
        body = await resp.json()
        assert body["status"] == "executed"
        assert body["trade"]["client_order_id"] == client_order_id

        # asking again returns the stored trade without a second record
        again = await (await client.post(f"/api/trades/reconcile/{client_order_id}")).json()
        assert again["status"] == "executed"
        assert len(server.store.list_trades()) == 1
        assert server.store.list_pending_orders() == []
    assert exchange.call_count("place_order") == 1


@pytest.mark.asyncio
async def test_ambiguous_trade_not_executed(tmp_path):
    exchange = InMemoryExchange()
    exchange.fail("place_order", NetworkError("connection reset"))
    async with api(tmp_path, exchange) as (client, server):
        body = await (await client.post("/api/trades", json=LIVE_TRADE)).json()
        client_order_id = body["detail"]["client_order_id"]

        resp = await client.post(f"/api/trades/reconcile/{client_order_id}")
        assert (await resp.json())["status"] == "not_executed"
        assert server.store.list_pending_orders() == []
        assert server.store.list_trades() == []


@pytest.mark.asyncio
async def test_pending_order_survives_restart(tmp_path):
    exchange = LostResponseExchange()
    async with api(tmp_path, exchange) as (client, _):
        body = await (await client.post("/api/trades", json=LIVE_TRADE)).json()
        client_order_id = body["detail"]["client_order_id"]

    async with api(tmp_path, exchange) as (client, server):
        assert [p["client_order_id"] for p in server.store.list_pending_orders()] == [client_order_id]
        resp = await client.post(f"/api/trades/reconcile/{client_order_id}")
        assert resp.status == 200
        body = await resp.json()
        assert body["status"] == "executed"
        assert body["trade"]["symbol"] == "BTC/USDT"
        assert Decimal(body["trade"]["quantity"]) == Decimal("0.01")
    assert exchange.call_count("place_order") == 1


@pytest.mark.asyncio
async def test_reconcile_unknown_client_order_id(tmp_path):
    async with api(tmp_path, InMemoryExchange()) as (client, _):
        resp = await client.post("/api/trades/reconcile/tb-unknown")
        assert resp.status == 404
        assert "no trade recorded" in (await resp.json())["error"]


@pytest.mark.asyncio
async def test_invalid_trade_body(tmp_path):
    async with api(tmp_path) as (client, _):
        resp = await client.post("/api/trades", json={**PAPER_TRADE, "trade_type": "HOLD"})
        assert resp.status == 400
        body = await resp.json()
        assert body["type"] == "ValidationError"
        assert body["detail"][0]["field"] == "trade_type"

        resp = await client.post("/api/trades", data="not json", headers={"Content-Type": "application/json"})
        assert resp.status == 400
        assert (await resp.json())["type"] == "InvalidTradeRequest"

        resp = await client.get("/api/trades?limit=abc")
        assert resp.status == 400


@pytest.mark.asyncio
async def test_missing_trade(tmp_path):
    async with api(tmp_path) as (client, _):
        resp = await client.get("/api/trades/42")
        assert resp.status == 404


@pytest.mark.asyncio
async def test_market_data_requires_exchange(tmp_path):
    async with api(tmp_path) as (client, _):
        resp = await client.get("/api/trades/price/BTC/USDT")
        assert resp.status == 503
        assert (await resp.json())["type"] == "ConfigurationError"

        resp = await client.get("/api/account")
        assert resp.status == 503


@pytest.mark.asyncio
async def test_market_data(tmp_path):
    exchange = InMemoryExchange({"BTCUSDT": "50000.5"})
    async with api(tmp_path, exchange) as (client, _):
        body = await (await client.get("/api/trades/price/BTC/USDT")).json()
        assert body["symbol"] == "BTC/USDT"
        assert body["exchangeSymbol"] == "BTCUSDT"
        assert body["price"] == "50000.5"

        ticker = await (await client.get("/api/trades/ticker/btc-usdt")).json()
        assert ticker["ticker"]["last_price"] == "50000.5"

        account = await (await client.get("/api/account")).json()
        assert account["account"]["canTrade"] is True


@pytest.mark.asyncio
async def test_cors_preflight(tmp_path):
    async with api(tmp_path) as (client, _):
        resp = await client.options("/api/trades")
        assert resp.status == 204
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

        resp = await client.get("/health")
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]


@pytest.mark.asyncio
async def test_positions_crud(tmp_path):
    async with api(tmp_path) as (client, _):
        new = {"symbol": "BTC/USD", "entry_price": "50000", "quantity": "0.5", "stop_loss": "48000"}
        resp = await client.post("/api/positions", json=new)
        assert resp.status == 201
        assert (await resp.json())["position"]["current_price"] == "50000"

        resp = await client.post("/api/positions", json=new)
        assert resp.status == 409

        resp = await client.put("/api/positions/BTC/USD", json={"current_price": "51000"})
        assert resp.status == 200
        position = (await resp.json())["position"]
        assert position["current_price"] == "51000"
        assert position["stop_loss"] == "48000"

        listed = await (await client.get("/api/positions")).json()
        assert listed["count"] == 1

        resp = await client.delete("/api/positions/BTC/USD")
        assert resp.status == 200

        resp = await client.get("/api/positions/BTC/USD")
        assert resp.status == 404
        resp = await client.put("/api/positions/BTC/USD", json={"current_price": "1"})
        assert resp.status == 404
        resp = await client.delete("/api/positions/BTC/USD")
        assert resp.status == 404


@pytest.mark.asyncio
async def test_invalid_position_body(tmp_path):
    async with api(tmp_path) as (client, _):
        resp = await client.post("/api/positions", json={"symbol": "BTC/USD", "entry_price": "-1", "quantity": "1"})
        assert resp.status == 400


def test_create_exchange_without_credentials():
    assert create_exchange(TradingConfig(), None) is None


def test_create_exchange_with_blank_key_stays_paper_only():
    assert create_exchange(TradingConfig(), BinanceCredentials(" ", "secret")) is None


def test_create_exchange_with_credentials():
    config = TradingConfig()
    config.exchange.testnet = True
    exchange = create_exchange(config, BinanceCredentials("key", "secret"))
    assert exchange.live_capable is True
    assert exchange.base_url == "https://testnet.binance.vision"
