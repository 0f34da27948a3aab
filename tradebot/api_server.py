"""aiohttp REST API for the trading backend.

Endpoints:
    GET    /                                   service banner
    GET    /health                             liveness
    GET    /config                             what is configured (never the secrets)
    GET    /api/trades?limit=&symbol=          trade history, newest first
    POST   /api/trades                         validate, execute (paper/live), persist
    GET    /api/trades/{id}
    GET    /api/trades/stats/summary
    GET    /api/trades/price/{symbol}          live exchange price
    GET    /api/trades/ticker/{symbol}         24h statistics
    GET    /api/trades/pending                 live orders awaiting reconciliation
    POST   /api/trades/reconcile/{client_order_id}
    GET    /api/account                        exchange account snapshot
    GET    /api/positions
    POST   /api/positions
    GET    /api/positions/{symbol}
    PUT    /api/positions/{symbol}
    DELETE /api/positions/{symbol}

Errors are JSON ``{"success": false, "error": ..., "type": ..., "detail": ...}``
with the status carried by the error class.

Run:
    python -m tradebot.api_server --config config.yaml
"""
import argparse
import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

from aiohttp import web
from pydantic import ValidationError

from .async_binance_adapter import AsyncBinanceAdapter
from .config import TradingConfig
from .errors import AmbiguousExecution, ConfigurationError, InvalidTradeRequest, RecordNotFound, TradeBotError
from .execution import TradeExecutionOrchestrator, call_adapter
from .logging_setup import logger, setup_logging
from .models import ExecutionOutcome, TradeRequest, normalize_symbol
from .notifications import TelegramNotifier
from .persistence_sqlite import TradeStore
from .rate_limit_policy import RateLimitManager
from .schemas import PositionCreate, PositionUpdate, TradeCreate, validation_errors
from .secrets import BinanceCredentials, load_optional_credentials
from .stats import summarize_trades

VERSION = "1.0.0"
DEFAULT_TRADE_LIMIT = 100
MAX_TRADE_LIMIT = 1000
NOT_CONFIGURED = "Binance API not configured; paper trading only"


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def cors_middleware(origin: str):
    headers = {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }

    @web.middleware
    async def middleware(request: web.Request, handler):
        if request.method == "OPTIONS":
            return web.Response(status=204, headers=headers)
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers.update(headers)
            raise
        response.headers.update(headers)
        return response

    return middleware


def error_middleware(show_internal: bool):
    @web.middleware
    async def middleware(request: web.Request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except ValidationError as e:
            return web.json_response(
                {"success": False, "error": "Invalid request body", "type": "ValidationError", "detail": validation_errors(e)},
                status=400,
            )
        except TradeBotError as e:
            if e.http_status >= 500:
                logger.error(f"{request.method} {request.path} failed: {type(e).__name__}: {e.message}")
            return web.json_response({"success": False, **e.to_dict()}, status=e.http_status)
        except Exception as e:
            logger.exception(f"Unhandled error on {request.method} {request.path}")
            message = str(e) if show_internal else "Internal server error"
            return web.json_response({"success": False, "error": message, "type": "InternalError"}, status=500)

    return middleware


class TradeBotServer:
    def __init__(
        self,
        config: TradingConfig,
        store: TradeStore,
        exchange: Optional[Any] = None,
        notifier: Optional[TelegramNotifier] = None,
    ):
        self.config = config
        self.store = store
        self.exchange = exchange
        self.notifier = notifier or TelegramNotifier.from_config(config.notifications)
        self.orchestrator = TradeExecutionOrchestrator.from_config(
            exchange, config.execution, on_reconciled=self._record_reconciled
        )
        self._tasks: Set[asyncio.Task] = set()
        self.app = web.Application(
            middlewares=[
                cors_middleware(config.server.cors_origin),
                error_middleware(config.server.environment == "development"),
            ]
        )
        self._setup_routes()

    def _setup_routes(self):
        self.app.router.add_get("/", self.handle_index)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/config", self.handle_config)
        self.app.router.add_get("/api/account", self.handle_account)
        self.app.router.add_get("/api/trades", self.handle_list_trades)
        self.app.router.add_post("/api/trades", self.handle_create_trade)
        self.app.router.add_get("/api/trades/stats/summary", self.handle_trade_stats)
        self.app.router.add_get("/api/trades/price/{symbol:.+}", self.handle_price)
        self.app.router.add_get("/api/trades/ticker/{symbol:.+}", self.handle_ticker)
        self.app.router.add_get("/api/trades/pending", self.handle_list_pending)
        self.app.router.add_post("/api/trades/reconcile/{client_order_id}", self.handle_reconcile)
        self.app.router.add_get(r"/api/trades/{id:\d+}", self.handle_get_trade)
        self.app.router.add_get("/api/positions", self.handle_list_positions)
        self.app.router.add_post("/api/positions", self.handle_create_position)
        self.app.router.add_get("/api/positions/{symbol:.+}", self.handle_get_position)
        self.app.router.add_put("/api/positions/{symbol:.+}", self.handle_update_position)
        self.app.router.add_delete("/api/positions/{symbol:.+}", self.handle_delete_position)
        self.app.on_startup.append(self._on_startup)
        self.app.on_cleanup.append(self._on_cleanup)

    # --- helpers ---
    @staticmethod
    async def _json_body(request: web.Request) -> Dict[str, Any]:
        try:
            body = await request.json()
        except json.JSONDecodeError:
            raise InvalidTradeRequest("Request body must be valid JSON")
        if not isinstance(body, dict):
            raise InvalidTradeRequest("Request body must be a JSON object")
        return body

    def _require_exchange(self):
        if self.exchange is None:
            raise ConfigurationError(NOT_CONFIGURED)
        return self.exchange

    def _notify(self, trade: Dict[str, Any]) -> None:
        if not self.notifier.enabled:
            return
        task = asyncio.get_running_loop().create_task(self.notifier.send_trade_alert(trade))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _persist(self, request: TradeRequest, outcome: ExecutionOutcome) -> Dict[str, Any]:
        if outcome.client_order_id:
            existing = self.store.find_trade_by_client_order_id(outcome.client_order_id)
            if existing:
                return existing
        trade = self.store.get_trade(self.store.save_trade(request, outcome))
        self._notify(trade)
        return trade

    async def _record_reconciled(self, request: TradeRequest, outcome: ExecutionOutcome) -> None:
        trade = self._persist(request, outcome)
        self.store.remove_pending_order(outcome.client_order_id)
        logger.info(f"Recorded reconciled trade id={trade['id']} client_order_id={outcome.client_order_id}")

    # --- service endpoints ---
    async def handle_index(self, request: web.Request):
        return web.json_response({
            "message": "Trading Bot API",
            "version": VERSION,
            "endpoints": {
                "health": "/health",
                "config": "/config",
                "trades": "/api/trades",
                "positions": "/api/positions",
                "account": "/api/account",
            },
        })

    async def handle_health(self, request: web.Request):
        return web.json_response({"status": "ok", "timestamp": _utcnow(), "environment": self.config.server.environment})

    async def handle_config(self, request: web.Request):
        return web.json_response({
            "success": True,
            "config": {
                "databaseConnected": self.store is not None,
                "exchangeConfigured": self.exchange is not None,
                "liveTradingAvailable": self.orchestrator.gate.can_execute_live(),
                "testnet": self.config.exchange.testnet,
                "notificationsEnabled": self.notifier.enabled,
                "environment": self.config.server.environment,
            },
        })

    async def handle_account(self, request: web.Request):
        account = await call_adapter(self._require_exchange(), "get_account")
        return web.json_response({"success": True, "account": account})

    # --- trades ---
    async def handle_list_trades(self, request: web.Request):
        raw_limit = request.query.get("limit")
        try:
            limit = int(raw_limit) if raw_limit else DEFAULT_TRADE_LIMIT
        except ValueError:
            raise InvalidTradeRequest("limit must be an integer", detail={"limit": raw_limit})
        limit = max(1, min(limit, MAX_TRADE_LIMIT))
        trades = self.store.list_trades(limit=limit, symbol=request.query.get("symbol"))
        return web.json_response({"success": True, "count": len(trades), "trades": trades})

    async def handle_get_trade(self, request: web.Request):
        trade = self.store.get_trade(int(request.match_info["id"]))
        if trade is None:
            raise RecordNotFound("Trade not found")
        return web.json_response({"success": True, "trade": trade})

    async def handle_create_trade(self, request: web.Request):
        body = TradeCreate.model_validate(await self._json_body(request))
        trade_request = body.to_trade_request()
        try:
            outcome = await self.orchestrator.execute(trade_request)
        except AmbiguousExecution as e:
            if e.client_order_id:
                self.store.add_pending_order(e.client_order_id, trade_request, error=e.cause.message if e.cause else None)
            raise

        trade = self._persist(trade_request, outcome)
        return web.json_response(
            {
                "success": True,
                "trade": trade,
                "exchangeOrder": outcome.order.to_dict() if outcome.order else None,
                "mode": outcome.mode.value,
            },
            status=201,
        )

    async def handle_trade_stats(self, request: web.Request):
        return web.json_response({"success": True, "stats": summarize_trades(self.store.all_trades())})

    async def handle_price(self, request: web.Request):
        exchange = self._require_exchange()
        symbol = request.match_info["symbol"]
        exchange_symbol = normalize_symbol(symbol)
        price = await call_adapter(exchange, "get_price", exchange_symbol)
        return web.json_response({
            "success": True,
            "symbol": symbol,
            "exchangeSymbol": exchange_symbol,
            "price": str(price),
            "timestamp": _utcnow(),
        })

    async def handle_ticker(self, request: web.Request):
        exchange = self._require_exchange()
        exchange_symbol = normalize_symbol(request.match_info["symbol"])
        stats = await call_adapter(exchange, "get_24hr_stats", exchange_symbol)
        return web.json_response({"success": True, "ticker": stats.to_dict()})

    async def handle_list_pending(self, request: web.Request):
        orders = self.store.list_pending_orders()
        return web.json_response({"success": True, "count": len(orders), "orders": orders})

    async def handle_reconcile(self, request: web.Request):
        client_order_id = request.match_info["client_order_id"]
        trade_request = self.store.get_pending_order(client_order_id)
        if trade_request is None:
            existing = self.store.find_trade_by_client_order_id(client_order_id)
            if existing is None:
                raise RecordNotFound(
                    "No ambiguous order pending for this client order id and no trade recorded with it",
                    detail={"client_order_id": client_order_id},
                )
            return web.json_response({"success": True, "status": "executed", "trade": existing})

        outcome = await self.orchestrator.reconcile(trade_request, client_order_id)
        if outcome is None:
            self.store.remove_pending_order(client_order_id)
            return web.json_response({"success": True, "status": "not_executed", "client_order_id": client_order_id})

        trade = self._persist(trade_request, outcome)
        self.store.remove_pending_order(client_order_id)
        return web.json_response({
            "success": True,
            "status": "executed",
            "trade": trade,
            "exchangeOrder": outcome.order.to_dict() if outcome.order else None,
        })

    # --- positions ---
    async def handle_list_positions(self, request: web.Request):
        positions = self.store.list_positions()
        return web.json_response({"success": True, "count": len(positions), "positions": positions})

    async def handle_get_position(self, request: web.Request):
        position = self.store.get_position(request.match_info["symbol"])
        if position is None:
            raise RecordNotFound("Position not found")
        return web.json_response({"success": True, "position": position})

    async def handle_create_position(self, request: web.Request):
        body = PositionCreate.model_validate(await self._json_body(request))
        position = self.store.create_position(**body.model_dump())
        return web.json_response({"success": True, "position": position}, status=201)

    async def handle_update_position(self, request: web.Request):
        body = PositionUpdate.model_validate(await self._json_body(request))
        position = self.store.update_position(request.match_info["symbol"], **body.changes())
        if position is None:
            raise RecordNotFound("Position not found")
        return web.json_response({"success": True, "position": position})

    async def handle_delete_position(self, request: web.Request):
        position = self.store.delete_position(request.match_info["symbol"])
        if position is None:
            raise RecordNotFound("Position not found")
        return web.json_response({"success": True, "message": "Position closed", "position": position})

    # --- lifecycle ---
    async def _on_startup(self, app):
        if self.exchange is not None and hasattr(self.exchange, "open"):
            await self.exchange.open()
        pending = self.store.list_pending_orders()
        if pending:
            logger.warning(f"{len(pending)} live order(s) await reconciliation: {[p['client_order_id'] for p in pending]}")
        logger.info(
            f"Trading API ready | env={self.config.server.environment} "
            f"live={self.orchestrator.gate.can_execute_live()} testnet={self.config.exchange.testnet}"
        )

    async def _on_cleanup(self, app):
        await self.orchestrator.drain()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.notifier.close()
        if self.exchange is not None and hasattr(self.exchange, "close"):
            await call_adapter(self.exchange, "close")
        self.store.close()

    def run(self):
        web.run_app(self.app, host=self.config.server.host, port=self.config.server.port)


def create_exchange(config: TradingConfig, credentials: Optional[BinanceCredentials]) -> Optional[AsyncBinanceAdapter]:
    """Build the live exchange client, or None when the backend must stay paper-only."""
    if credentials is None:
        logger.warning("Binance credentials not configured; paper trading only")
        return None
    try:
        return AsyncBinanceAdapter.from_credentials(
            credentials,
            testnet=config.exchange.testnet,
            timeout=config.exchange.timeout,
            max_retries=config.exchange.max_retries,
            max_backoff_seconds=config.exchange.max_backoff_seconds,
            rate_limiter=RateLimitManager.from_config(config.rate_limit),
        )
    except ConfigurationError as e:
        logger.warning(f"Binance client unavailable ({e.message}); paper trading only")
        return None


def build_server(config: TradingConfig, credentials: Optional[BinanceCredentials] = None) -> TradeBotServer:
    store = TradeStore(config.persistence.db_path, password=config.persistence.encryption_password)
    return TradeBotServer(config, store, exchange=create_exchange(config, credentials))


def main(argv=None):
    parser = argparse.ArgumentParser(description="Trading bot REST API")
    parser.add_argument("--config", help="YAML config file (default: environment variables)")
    parser.add_argument("--host", help="Bind address")
    parser.add_argument("--port", type=int, help="Listen port")
    parser.add_argument("--db", help="SQLite database path")
    parser.add_argument("--credentials", help="Binance credentials JSON file")
    args = parser.parse_args(argv)

    config = TradingConfig.from_yaml(args.config) if args.config else TradingConfig.from_env()
    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port
    if args.db:
        config.persistence.db_path = args.db

    credentials = load_optional_credentials(args.credentials)
    redact = [config.notifications.telegram_bot_token, config.persistence.encryption_password]
    if credentials is not None:
        redact += [credentials.api_key, credentials.api_secret]
    setup_logging(log_file=config.persistence.log_file, level=config.persistence.log_level, redact=[r for r in redact if r])

    server = build_server(config, credentials)
    logger.info(f"Starting trading API on http://{config.server.host}:{config.server.port}")
    server.run()


if __name__ == "__main__":
    main()
