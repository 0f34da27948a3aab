"""Secrets management: load Binance API credentials from environment or config file.

Priority order:
1. Environment variables: BINANCE_API_KEY, BINANCE_SECRET
2. Config file: ~/.binance_config.json or custom path via ENV BINANCE_CONFIG_PATH

Credentials stay in process memory; nothing here logs them.
"""
import json
import os
from pathlib import Path
from typing import NamedTuple, Optional

from .errors import ConfigurationError


class BinanceCredentials(NamedTuple):
    api_key: str
    api_secret: str

    def __repr__(self) -> str:
        return "BinanceCredentials(api_key=<redacted>, api_secret=<redacted>)"


def load_credentials(config_path: Optional[str] = None) -> BinanceCredentials:
    """Load Binance credentials from env or config file.

    Args:
        config_path: Optional override path to config file. If not provided,
                     checks BINANCE_CONFIG_PATH env var, then ~/.binance_config.json

    Returns:
        BinanceCredentials with api_key, api_secret

    Raises:
        ConfigurationError: If credentials are not found, incomplete or unreadable
    """
    api_key = os.getenv("BINANCE_API_KEY")
    api_secret = os.getenv("BINANCE_SECRET")

    if api_key and api_secret:
        return BinanceCredentials(api_key=api_key, api_secret=api_secret)

    if config_path is None:
        config_path = os.getenv("BINANCE_CONFIG_PATH")
    if config_path is None:
        config_path = str(Path.home() / ".binance_config.json")

    config_file = Path(config_path)
    if config_file.exists():
        try:
            with config_file.open("r") as f:
                cfg = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Failed to load config from {config_path}: {e}")
        api_key = cfg.get("api_key") or api_key
        api_secret = cfg.get("api_secret") or api_secret

    if not api_key or not api_secret:
        raise ConfigurationError(
            "Missing Binance credentials. Provide via:\n"
            "  - Environment: BINANCE_API_KEY, BINANCE_SECRET\n"
            f"  - Config file: {config_path}\n"
            "  - BINANCE_CONFIG_PATH env var to override config location"
        )

    return BinanceCredentials(api_key=api_key, api_secret=api_secret)


def load_optional_credentials(config_path: Optional[str] = None) -> Optional[BinanceCredentials]:
    """Like :func:`load_credentials` but returns None when credentials are absent.

    Absent credentials are not an error for the backend: it runs paper-only.
    """
    try:
        return load_credentials(config_path)
    except ConfigurationError:
        return None


def save_config(config_path: str, api_key: str, api_secret: str) -> None:
    """Save credentials to a config file for later use.

    WARNING: Stores secrets in plaintext. The file is restricted to mode 600.
    """
    cfg_file = Path(config_path)
    cfg_file.parent.mkdir(parents=True, exist_ok=True)

    with cfg_file.open("w") as f:
        json.dump({"api_key": api_key, "api_secret": api_secret}, f, indent=2)

    if os.name == "posix":
        cfg_file.chmod(0o600)
