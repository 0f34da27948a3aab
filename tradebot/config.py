"""Configuration loader for the trading backend.

Supports YAML format with environment variable interpolation, or plain
environment variables for container deployments. Credentials are not part of
this config; see ``tradebot.secrets``.
"""
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class ExchangeConfig:
    """Binance endpoint and transport settings."""
    testnet: bool = False
    timeout: float = 10
    max_retries: int = 3  # idempotent reads only
    max_backoff_seconds: float = 30.0


@dataclass
class ExecutionConfig:
    """Live execution and reconciliation policy."""
    client_order_ids: bool = True  # tag live orders so a lost response can be looked up
    reconcile_delay_seconds: float = 1.0
    reconcile_attempts: int = 3


@dataclass
class RateLimitConfig:
    """Client-side request quotas."""
    orders_per_second: int = 10
    default_per_second: int = 20


@dataclass
class ServerConfig:
    """REST API server settings."""
    host: str = "0.0.0.0"
    port: int = 10000
    environment: str = "development"
    cors_origin: str = "*"


@dataclass
class PersistenceConfig:
    """Database and log file settings."""
    db_path: str = "tradebot.db"
    encryption_password: Optional[str] = None
    log_file: str = "tradebot.log"
    log_level: str = "INFO"


@dataclass
class NotificationConfig:
    """Telegram trade alerts; disabled unless both values are set."""
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class TradingConfig:
    """Complete backend configuration."""
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    @classmethod
    def from_yaml(cls, config_path: str) -> "TradingConfig":
        """Load configuration from YAML file with env var interpolation.

        Args:
            config_path: Path to YAML config file

        Returns:
            TradingConfig instance

        Example YAML:
            exchange:
              testnet: true
              timeout: 10
            server:
              port: 10000
            persistence:
              db_path: "${STATE_DIR}/tradebot.db"
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        raw = config_file.read_text()
        for key, value in os.environ.items():
            raw = raw.replace(f"${{{key}}}", value)

        data = yaml.safe_load(raw) or {}
        return cls(
            exchange=ExchangeConfig(**data.get("exchange", {})),
            execution=ExecutionConfig(**data.get("execution", {})),
            rate_limit=RateLimitConfig(**data.get("rate_limit", {})),
            server=ServerConfig(**data.get("server", {})),
            persistence=PersistenceConfig(**data.get("persistence", {})),
            notifications=NotificationConfig(**data.get("notifications", {})),
        )

    @classmethod
    def from_env(cls) -> "TradingConfig":
        """Build configuration from environment variables, defaults elsewhere."""
        config = cls()
        config.exchange.testnet = _env_bool("BINANCE_TESTNET")
        config.server.port = int(os.getenv("PORT", config.server.port))
        config.server.environment = os.getenv("TRADEBOT_ENV", config.server.environment)
        config.server.cors_origin = os.getenv("CORS_ORIGIN", config.server.cors_origin)
        config.persistence.db_path = os.getenv("TRADEBOT_DB", config.persistence.db_path)
        config.persistence.encryption_password = os.getenv("TRADEBOT_DB_PASSWORD") or None
        config.persistence.log_level = os.getenv("LOG_LEVEL", config.persistence.log_level)
        config.notifications.telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN") or None
        config.notifications.telegram_chat_id = os.getenv("TELEGRAM_CHAT_ID") or None
        return config

    def to_yaml(self, output_path: str) -> None:
        """Save configuration to YAML file."""
        output_file = Path(output_path)
        output_file.parent.mkdir(parents=True, exist_ok=True)
        with output_file.open("w") as f:
            yaml.safe_dump(asdict(self), f, default_flow_style=False, sort_keys=False)
