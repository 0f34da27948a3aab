from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .db_encryption import get_connection
from .db_migrations import apply_migrations
from .errors import RecordExists
from .logging_setup import logger
from .models import ExecutionOutcome, TradeMode, TradeRequest, to_decimal

POSITION_UPDATE_FIELDS = ("current_price", "stop_loss", "take_profit", "trailing_stop", "unrealized_pnl")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _num(value: Any, name: str) -> Optional[str]:
    if value is None:
        return None
    return str(to_decimal(value, name))


def _dict_row(cursor, row) -> Dict[str, Any]:
    return {col[0]: row[i] for i, col in enumerate(cursor.description)}


class TradeStore:
    """SQLite-backed store for executed trades and open positions.

    Trades are append-only records of what the orchestrator did (paper or
    live). Positions are keyed by the human-readable symbol, one per symbol.
    Pending orders are live orders sent without a confirmed outcome; they stay
    until reconciled, so a restart does not lose them.
    Rows come back as plain dicts with numbers as decimal strings.

    All writes use transactions for atomicity.
    """

    def __init__(self, path: Union[str, Path], password: Optional[str] = None):
        self.path = Path(path)
        if str(path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = get_connection(str(path), password, timeout=30, check_same_thread=False)
        self._init_db()
        self.conn.row_factory = _dict_row

    def _init_db(self):
        applied = apply_migrations(self.conn)
        if applied:
            logger.info(f"Applied schema migrations {applied} to {self.path}")

    @contextmanager
    def _transaction(self):
        cur = self.conn.cursor()
        cur.execute("BEGIN IMMEDIATE")
        try:
            yield cur
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def _one(self, sql: str, params=()) -> Optional[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return cur.fetchone()

    # --- Trade APIs ---
    def save_trade(self, request: TradeRequest, outcome: ExecutionOutcome, profit_loss: Any = None) -> int:
        """Record an executed trade; returns the new trade id."""
        order = outcome.order
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT INTO trades(symbol, trade_type, price, quantity, total_value, confidence, strategy, mode,
                                   exchange_symbol, exchange_order_id, exchange_status, client_order_id,
                                   profit_loss, created_at)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    request.symbol,
                    request.side,
                    str(request.price),
                    str(request.quantity),
                    str(outcome.total_value),
                    _num(request.confidence, "confidence"),
                    request.strategy,
                    outcome.mode.value,
                    outcome.exchange_symbol,
                    str(order.order_id) if order and order.order_id is not None else None,
                    order.status if order else None,
                    outcome.client_order_id,
                    _num(profit_loss, "profit_loss"),
                    _now(),
                ),
            )
            trade_id = cur.lastrowid
        return trade_id

    def get_trade(self, trade_id: int) -> Optional[Dict[str, Any]]:
        return self._one("SELECT * FROM trades WHERE id = ?", (trade_id,))

    def find_trade_by_client_order_id(self, client_order_id: str) -> Optional[Dict[str, Any]]:
        return self._one("SELECT * FROM trades WHERE client_order_id = ?", (client_order_id,))

    def list_trades(self, limit: int = 100, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        """Newest first, optionally filtered by the stored (human-readable) symbol."""
        sql = "SELECT * FROM trades"
        params: List[Any] = []
        if symbol:
            sql += " WHERE symbol = ?"
            params.append(symbol)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(limit)
        cur = self.conn.cursor()
        cur.execute(sql, params)
        return cur.fetchall()

    def all_trades(self) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM trades ORDER BY created_at, id")
        return cur.fetchall()

    def set_profit_loss(self, trade_id: int, profit_loss: Any) -> Optional[Dict[str, Any]]:
        with self._transaction() as cur:
            cur.execute("UPDATE trades SET profit_loss = ? WHERE id = ?", (_num(profit_loss, "profit_loss"), trade_id))
        return self.get_trade(trade_id)

    # --- Pending (ambiguous) live orders ---
    def add_pending_order(self, client_order_id: str, request: TradeRequest, error: Optional[str] = None) -> None:
        """Remember a live order whose outcome is unknown until it is reconciled."""
        mode = request.mode.value if isinstance(request.mode, TradeMode) else str(request.mode)
        with self._transaction() as cur:
            cur.execute(
                """
                INSERT OR REPLACE INTO pending_orders(client_order_id, symbol, trade_type, price, quantity,
                                                      confidence, strategy, mode, error, created_at)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    client_order_id,
                    request.symbol,
                    request.side,
                    str(request.price),
                    str(request.quantity),
                    _num(request.confidence, "confidence"),
                    request.strategy,
                    mode,
                    error,
                    _now(),
                ),
            )

    def get_pending_order(self, client_order_id: str) -> Optional[TradeRequest]:
        row = self._one("SELECT * FROM pending_orders WHERE client_order_id = ?", (client_order_id,))
        if row is None:
            return None
        return TradeRequest(
            symbol=row["symbol"],
            trade_type=row["trade_type"],
            price=row["price"],
            quantity=row["quantity"],
            confidence=float(row["confidence"]) if row["confidence"] is not None else None,
            strategy=row["strategy"],
            mode=row["mode"],
        )

    def list_pending_orders(self) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM pending_orders ORDER BY created_at, client_order_id")
        return cur.fetchall()

    def remove_pending_order(self, client_order_id: str) -> bool:
        with self._transaction() as cur:
            cur.execute("DELETE FROM pending_orders WHERE client_order_id = ?", (client_order_id,))
            removed = cur.rowcount
        return bool(removed)

    # --- Position APIs ---
    def create_position(
        self,
        symbol: str,
        entry_price: Any,
        quantity: Any,
        stop_loss: Any = None,
        take_profit: Any = None,
        trailing_stop: Any = None,
    ) -> Dict[str, Any]:
        """Open a position; ``current_price`` starts at the entry price.

        Raises:
            RecordExists: a position for ``symbol`` is already open
        """
        entry = _num(entry_price, "entry_price")
        now = _now()
        with self._transaction() as cur:
            cur.execute("SELECT 1 FROM positions WHERE symbol = ?", (symbol,))
            if cur.fetchone():
                raise RecordExists(f"Position already open for {symbol}", detail={"symbol": symbol})
            cur.execute(
                """
                INSERT INTO positions(symbol, entry_price, current_price, quantity, stop_loss, take_profit,
                                      trailing_stop, unrealized_pnl, opened_at, updated_at)
                VALUES(?, ?, ?, ?, ?, ?, ?, NULL, ?, ?)
                """,
                (
                    symbol,
                    entry,
                    entry,
                    _num(quantity, "quantity"),
                    _num(stop_loss, "stop_loss"),
                    _num(take_profit, "take_profit"),
                    _num(trailing_stop, "trailing_stop"),
                    now,
                    now,
                ),
            )
        return self.get_position(symbol)

    def get_position(self, symbol: str) -> Optional[Dict[str, Any]]:
        return self._one("SELECT * FROM positions WHERE symbol = ?", (symbol,))

    def list_positions(self) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM positions ORDER BY opened_at DESC, symbol")
        return cur.fetchall()

    def update_position(self, symbol: str, **changes: Any) -> Optional[Dict[str, Any]]:
        """Change only the provided (non-None) fields. Returns None if no such position."""
        unknown = set(changes) - set(POSITION_UPDATE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update position fields: {sorted(unknown)}")

        assignments = []
        params: List[Any] = []
        for name in POSITION_UPDATE_FIELDS:
            if changes.get(name) is not None:
                assignments.append(f"{name} = ?")
                params.append(_num(changes[name], name))
        assignments.append("updated_at = ?")
        params.append(_now())
        params.append(symbol)

        with self._transaction() as cur:
            cur.execute(f"UPDATE positions SET {', '.join(assignments)} WHERE symbol = ?", params)
            updated = cur.rowcount
        if not updated:
            return None
        return self.get_position(symbol)

    def delete_position(self, symbol: str) -> Optional[Dict[str, Any]]:
        """Close a position; returns the removed row, or None if there was none."""
        with self._transaction() as cur:
            cur.execute("SELECT * FROM positions WHERE symbol = ?", (symbol,))
            row = cur.fetchone()
            if row:
                cur.execute("DELETE FROM positions WHERE symbol = ?", (symbol,))
        return row

    def close(self):
        self.conn.close()
