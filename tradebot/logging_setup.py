"""Structured logging setup using loguru."""
import sys
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger as _logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

REDACTED = "***"


def _redactor(secrets: Iterable[str]):
    values = sorted({s for s in secrets if s}, key=len, reverse=True)

    def patch(record):
        message = record["message"]
        for value in values:
            if value in message:
                message = message.replace(value, REDACTED)
        record["message"] = message

    return patch


def setup_logging(
    log_file: Optional[str] = "tradebot.log",
    level: str = "INFO",
    enable_console: bool = True,
    redact: Iterable[str] = (),
) -> None:
    """Configure logging for the trading backend.

    Args:
        log_file: Path to the rotating log file; None disables file logging
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_console: Whether to log to stdout as well
        redact: Secret values (API key, API secret, bot tokens) masked in every record
    """
    _logger.remove()
    _logger.configure(patcher=_redactor(redact))

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _logger.add(
            str(log_path),
            format=LOG_FORMAT,
            level=level,
            rotation="100 MB",
            retention="7 days",
        )

    if enable_console:
        _logger.add(sys.stdout, format=LOG_FORMAT, level=level, colorize=True)


logger = _logger
