from pathlib import Path

import pytest

from tradebot.config import TradingConfig


def test_defaults():
    config = TradingConfig()
    assert config.exchange.testnet is False
    assert config.execution.client_order_ids is True
    assert config.server.port == 10000
    assert config.notifications.telegram_enabled is False


def test_from_yaml_with_env_interpolation(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("STATE_DIR", "/var/lib/tradebot")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(
        """
exchange:
  testnet: true
  timeout: 5
execution:
  reconcile_attempts: 5
server:
  port: 8080
persistence:
  db_path: "${STATE_DIR}/trades.db"
"""
    )

    config = TradingConfig.from_yaml(str(config_file))
    assert config.exchange.testnet is True
    assert config.exchange.timeout == 5
    assert config.execution.reconcile_attempts == 5
    assert config.server.port == 8080
    assert config.persistence.db_path == "/var/lib/tradebot/trades.db"
    # untouched sections keep defaults
    assert config.rate_limit.orders_per_second == 10


def test_from_yaml_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        TradingConfig.from_yaml(str(tmp_path / "missing.yaml"))


def test_from_env(monkeypatch):
    monkeypatch.setenv("BINANCE_TESTNET", "true")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("TRADEBOT_DB", "/tmp/x.db")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "token")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "42")
    monkeypatch.delenv("TRADEBOT_DB_PASSWORD", raising=False)

    config = TradingConfig.from_env()
    assert config.exchange.testnet is True
    assert config.server.port == 9000
    assert config.persistence.db_path == "/tmp/x.db"
    assert config.persistence.encryption_password is None
    assert config.notifications.telegram_enabled is True


def test_to_yaml_round_trip(tmp_path: Path):
    config = TradingConfig()
    config.server.port = 1234
    config.execution.client_order_ids = False
    path = tmp_path / "out" / "config.yaml"

    config.to_yaml(str(path))
    loaded = TradingConfig.from_yaml(str(path))

    assert loaded == config
