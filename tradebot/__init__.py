"""
Crypto Trading Bot Backend.

Accepts trade requests over a REST API, decides through a single execution
gate whether each one may touch the real exchange, and either records a paper
trade or places a signed market order on Binance spot:
- HMAC-SHA256 request signing with a fresh timestamp per call
- Blocking (requests) and async (aiohttp) Binance clients with one retry policy:
  idempotent reads retry with backoff, order writes never retry
- Ambiguous live orders (lost response) surfaced and reconciled by client order id
- Typed error taxonomy carried through to HTTP status codes
- SQLite trade/position store with versioned migrations, optional sqlcipher
- Telegram trade alerts
- Structured logging via loguru with secret redaction
- Configuration-driven (YAML or environment)

Core Modules:
    signer: HMAC-SHA256 query signing
    exchange: wire constants, error classification, adapter interface, in-memory adapter
    binance_adapter: blocking Binance client
    async_binance_adapter: aiohttp Binance client
    gate: live/paper authorization
    execution: trade execution orchestrator and reconciliation
    persistence_sqlite: trade and position store
    api_server: aiohttp REST API
    config: Configuration loading
    secrets: Credential management

Example:
    >>> from tradebot.binance_adapter import BinanceAdapter
    >>> from tradebot.execution import TradeExecutionOrchestrator
    >>> from tradebot.gate import ExecutionGate
    >>> from tradebot.secrets import load_credentials
    >>>
    >>> client = BinanceAdapter.from_credentials(load_credentials(), testnet=True)
    >>> orchestrator = TradeExecutionOrchestrator(ExecutionGate(client), client)
"""

__version__ = "1.0.0"
__all__ = [
    "signer",
    "errors",
    "models",
    "exchange",
    "binance_adapter",
    "async_binance_adapter",
    "gate",
    "execution",
    "rate_limit_policy",
    "persistence_sqlite",
    "db_migrations",
    "db_encryption",
    "stats",
    "notifications",
    "schemas",
    "api_server",
    "config",
    "secrets",
    "logging_setup",
]
