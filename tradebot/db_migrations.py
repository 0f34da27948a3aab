"""Versioned schema migrations for the trade database.

Each migration is a list of SQL statements with a matching list that undoes
it. Applied versions are tracked in ``schema_migrations``; every apply or
rollback runs in its own ``BEGIN IMMEDIATE`` transaction so a failure leaves
the schema at the previous version.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Optional, Sequence


class Migration(NamedTuple):
    version: int
    description: str
    up: Sequence[str]
    down: Sequence[str]


_TRADES_TABLE = """
CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL,
    trade_type TEXT NOT NULL,
    price TEXT NOT NULL,
    quantity TEXT NOT NULL,
    total_value TEXT NOT NULL,
    confidence TEXT,
    strategy TEXT,
    mode TEXT NOT NULL DEFAULT 'paper',
    exchange_symbol TEXT,
    exchange_order_id TEXT,
    exchange_status TEXT,
    client_order_id TEXT,
    profit_loss TEXT,
    created_at TEXT NOT NULL
)
"""

_POSITIONS_TABLE = """
CREATE TABLE IF NOT EXISTS positions (
    symbol TEXT PRIMARY KEY,
    entry_price TEXT NOT NULL,
    current_price TEXT,
    quantity TEXT NOT NULL,
    stop_loss TEXT,
    take_profit TEXT,
    trailing_stop TEXT,
    unrealized_pnl TEXT,
    opened_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

_PENDING_ORDERS_TABLE = """
CREATE TABLE IF NOT EXISTS pending_orders (
    client_order_id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    trade_type TEXT NOT NULL,
    price TEXT NOT NULL,
    quantity TEXT NOT NULL,
    confidence TEXT,
    strategy TEXT,
    mode TEXT NOT NULL,
    error TEXT,
    created_at TEXT NOT NULL
)
"""

# Amounts are TEXT decimal strings, never REAL.
_ALL = [
    Migration(
        1,
        "trades and positions tables",
        up=[_TRADES_TABLE, _POSITIONS_TABLE],
        down=["DROP TABLE IF EXISTS trades", "DROP TABLE IF EXISTS positions"],
    ),
    Migration(
        2,
        "trade history and reconciliation indices",
        up=[
            "CREATE INDEX IF NOT EXISTS idx_trades_symbol ON trades(symbol)",
            "CREATE INDEX IF NOT EXISTS idx_trades_created_at ON trades(created_at)",
            "CREATE INDEX IF NOT EXISTS idx_trades_client_order_id ON trades(client_order_id)",
        ],
        down=[
            "DROP INDEX IF EXISTS idx_trades_symbol",
            "DROP INDEX IF EXISTS idx_trades_created_at",
            "DROP INDEX IF EXISTS idx_trades_client_order_id",
        ],
    ),
    Migration(
        3,
        "live orders awaiting reconciliation",
        up=[_PENDING_ORDERS_TABLE],
        down=["DROP TABLE IF EXISTS pending_orders"],
    ),
]

MIGRATIONS: Dict[int, Migration] = {m.version: m for m in _ALL}


@contextmanager
def _in_transaction(conn):
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn.cursor()
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _ensure_migrations_table(conn) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )
    conn.commit()


def applied_at(conn) -> Dict[int, str]:
    """Map of applied version -> ISO timestamp."""
    _ensure_migrations_table(conn)
    cur = conn.cursor()
    cur.execute("SELECT version, applied_at FROM schema_migrations ORDER BY version")
    return {row[0]: row[1] for row in cur.fetchall()}


def applied_versions(conn) -> List[int]:
    return sorted(applied_at(conn))


def pending_versions(conn) -> List[int]:
    applied = set(applied_versions(conn))
    return sorted(v for v in MIGRATIONS if v not in applied)


def apply_migrations(conn) -> List[int]:
    """Apply pending migrations in version order.

    Returns:
        The versions applied by this call ([] when already up to date)
    """
    applied_now = []
    for version in pending_versions(conn):
        with _in_transaction(conn) as cur:
            for statement in MIGRATIONS[version].up:
                cur.execute(statement)
            cur.execute(
                "INSERT INTO schema_migrations(version, applied_at) VALUES(?, ?)",
                (version, datetime.now(timezone.utc).isoformat()),
            )
        applied_now.append(version)
    return applied_now


def rollback_migration(conn, version: int) -> None:
    """Undo one migration version and forget that it was applied."""
    migration = MIGRATIONS.get(version)
    if migration is None or not migration.down:
        raise RuntimeError(f"No down migration registered for version {version}")

    with _in_transaction(conn) as cur:
        for statement in migration.down:
            cur.execute(statement)
        cur.execute("DELETE FROM schema_migrations WHERE version = ?", (version,))


def rollback_last(conn) -> Optional[int]:
    """Undo the newest applied migration; returns its version, or None if nothing is applied."""
    versions = applied_versions(conn)
    if not versions:
        return None
    rollback_migration(conn, versions[-1])
    return versions[-1]
