"""
Trade execution: gate the request, then either record a paper result or place
a live market order.

Flow:
    1. Normalize the symbol for the exchange (the human form stays on the request).
    2. ExecutionGate.authorize; a rejection raises GateRejected before any exchange call.
    3. Paper: ExecutionOutcome(PAPER, order=None, total_value=price * quantity).
    4. Live: exchange.place_order(symbol, SIDE, quantity) exactly once.

A live order whose response never arrives (transport error, timeout, 5xx) is
reported as AmbiguousExecution and never re-sent. It is resolved by querying
the order with the client order id it was tagged with. If the caller is
cancelled while the order is in flight, that query runs in the background.

Works with blocking adapters (run in a worker thread) and async adapters alike.
"""
import asyncio
import inspect
import uuid
from typing import Any, Awaitable, Callable, Optional, Set

from .config import ExecutionConfig
from .errors import AmbiguousExecution, ConfigurationError, GateRejected, InvalidTradeRequest, NetworkError, OrderNotFound, RateLimitError
from .gate import ExecutionGate, Rejected
from .logging_setup import logger
from .models import SIDES, ExecutionOutcome, TradeMode, TradeRequest, normalize_symbol

ReconciledCallback = Callable[[TradeRequest, ExecutionOutcome], Awaitable[None]]


async def call_adapter(adapter: Any, method_name: str, *args, **kwargs):
    """Invoke an adapter method whether it is a coroutine or a blocking call."""
    method = getattr(adapter, method_name)
    if inspect.iscoroutinefunction(method):
        return await method(*args, **kwargs)
    return await asyncio.to_thread(method, *args, **kwargs)


def new_client_order_id() -> str:
    # Binance accepts up to 36 chars of [.A-Za-z0-9:/_-]
    return f"tb-{uuid.uuid4().hex[:24]}"


class TradeExecutionOrchestrator:
    def __init__(
        self,
        gate: ExecutionGate,
        exchange: Optional[Any] = None,
        *,
        client_order_ids: bool = True,
        reconcile_delay: float = 1.0,
        reconcile_attempts: int = 3,
        on_reconciled: Optional[ReconciledCallback] = None,
    ):
        self.gate = gate
        self.exchange = exchange
        self.client_order_ids = client_order_ids
        self.reconcile_delay = reconcile_delay
        self.reconcile_attempts = reconcile_attempts
        self.on_reconciled = on_reconciled
        self._background: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, exchange: Optional[Any], config: ExecutionConfig, **kwargs) -> "TradeExecutionOrchestrator":
        """Build the gate from ``exchange`` and apply the execution policy from config."""
        return cls(
            ExecutionGate(exchange),
            exchange,
            client_order_ids=config.client_order_ids,
            reconcile_delay=config.reconcile_delay_seconds,
            reconcile_attempts=config.reconcile_attempts,
            **kwargs,
        )

    async def _call(self, method_name: str, *args, **kwargs):
        return await call_adapter(self.exchange, method_name, *args, **kwargs)

    async def execute(self, request: TradeRequest) -> ExecutionOutcome:
        """Execute one trade request.

        Raises:
            GateRejected: mode unavailable or unknown (no exchange call made)
            InvalidTradeRequest: side is not BUY/SELL on a live trade
            AuthError, OrderRejected, RateLimitError: propagated from the exchange
            AmbiguousExecution: order sent, outcome unconfirmed
        """
        exchange_symbol = normalize_symbol(request.symbol)

        decision = self.gate.authorize(request)
        if isinstance(decision, Rejected):
            logger.warning(f"Trade rejected | symbol={request.symbol} mode={request.mode} reason={decision.reason}")
            raise GateRejected(decision.reason, detail={"mode": str(request.mode), "symbol": request.symbol})

        total_value = request.total_value
        if decision.mode is TradeMode.PAPER:
            logger.info(f"PAPER TRADE | {request.side} {request.quantity} {request.symbol} @ {request.price}")
            return ExecutionOutcome(mode=TradeMode.PAPER, order=None, total_value=total_value, exchange_symbol=exchange_symbol)

        side = request.side
        if side not in SIDES:
            raise InvalidTradeRequest(f"trade_type must be BUY or SELL, got {request.trade_type!r}")
        if self.exchange is None:
            raise ConfigurationError("Live execution authorized but no exchange client is attached")

        client_order_id = new_client_order_id() if self.client_order_ids else None
        kwargs = {"client_order_id": client_order_id} if client_order_id else {}
        logger.info(f"LIVE TRADE | {side} {request.quantity} {exchange_symbol} @ ~{request.price} client_order_id={client_order_id}")
        try:
            order = await self._call("place_order", exchange_symbol, side, request.quantity, **kwargs)
        except RateLimitError:
            # throttled orders were refused, not executed
            raise
        except NetworkError as e:
            logger.error(f"Live order outcome unknown | symbol={exchange_symbol} side={side} qty={request.quantity} client_order_id={client_order_id} error={e.message}")
            raise AmbiguousExecution(
                "Order was sent but its outcome is unknown; query the order before retrying",
                symbol=exchange_symbol,
                side=side,
                quantity=request.quantity,
                client_order_id=client_order_id,
                cause=e,
            ) from e
        except asyncio.CancelledError:
            logger.warning(f"Live order cancelled in flight | symbol={exchange_symbol} client_order_id={client_order_id}")
            self._schedule_reconcile(request, client_order_id)
            raise

        logger.info(f"Live order confirmed | order_id={order.order_id} status={order.status}")
        return ExecutionOutcome(
            mode=TradeMode.LIVE,
            order=order,
            total_value=total_value,
            exchange_symbol=exchange_symbol,
            client_order_id=client_order_id,
        )

    async def reconcile(self, request: TradeRequest, client_order_id: str) -> Optional[ExecutionOutcome]:
        """Look up an ambiguous live order.

        Returns:
            The live outcome if the exchange has the order, None if the exchange
            confirms it does not exist (the trade did not execute).

        Raises:
            NetworkError: still unknown; safe to call again later
        """
        if not client_order_id:
            raise InvalidTradeRequest("Cannot reconcile an order placed without a client order id")
        if self.exchange is None:
            raise ConfigurationError("No exchange client attached")

        exchange_symbol = normalize_symbol(request.symbol)
        try:
            order = await self._call("get_order", exchange_symbol, orig_client_order_id=client_order_id)
        except OrderNotFound:
            logger.info(f"Reconciled: order not on exchange | symbol={exchange_symbol} client_order_id={client_order_id}")
            return None

        logger.info(f"Reconciled: order found | order_id={order.order_id} status={order.status} client_order_id={client_order_id}")
        return ExecutionOutcome(
            mode=TradeMode.LIVE,
            order=order,
            total_value=request.total_value,
            exchange_symbol=exchange_symbol,
            client_order_id=client_order_id,
            reconciled=True,
        )

    def _schedule_reconcile(self, request: TradeRequest, client_order_id: Optional[str]) -> None:
        if not client_order_id:
            logger.error(f"Cancelled live order has no client order id; manual reconciliation required | symbol={request.symbol}")
            return
        task = asyncio.get_running_loop().create_task(self._reconcile_in_background(request, client_order_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _reconcile_in_background(self, request: TradeRequest, client_order_id: str) -> None:
        for attempt in range(self.reconcile_attempts):
            await asyncio.sleep(self.reconcile_delay * (attempt + 1))
            try:
                outcome = await self.reconcile(request, client_order_id)
            except NetworkError as e:
                logger.warning(f"Reconciliation attempt {attempt + 1}/{self.reconcile_attempts} failed: {e.message}")
                continue
            if outcome is not None and self.on_reconciled is not None:
                await self.on_reconciled(request, outcome)
            return
        logger.error(f"Reconciliation exhausted; manual check required | symbol={request.symbol} client_order_id={client_order_id}")

    async def drain(self) -> None:
        """Wait for background reconciliations to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
