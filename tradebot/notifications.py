"""Telegram trade alerts.

Delivery is best effort: a failed or unconfigured notification is logged and
reported through the return value, never raised into the trade path.
"""
import asyncio
import html
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp

from .config import NotificationConfig
from .logging_setup import logger

TELEGRAM_API = "https://api.telegram.org"


def format_trade_alert(trade: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """Render a stored trade row as an HTML Telegram message."""
    now = now or datetime.now(timezone.utc)
    lines = [
        "🤖 <b>Trading Bot Alert</b>",
        "",
        f"Type: {html.escape(str(trade.get('trade_type')))}",
        f"Symbol: {html.escape(str(trade.get('symbol')))}",
        f"Price: ${trade.get('price')}",
        f"Quantity: {trade.get('quantity')}",
    ]
    if trade.get("profit_loss") is not None:
        lines.append(f"P&amp;L: ${trade.get('profit_loss')}")
    if trade.get("confidence") is not None:
        lines.append(f"Confidence: {trade.get('confidence')}%")
    if trade.get("mode"):
        lines.append(f"Mode: {html.escape(str(trade.get('mode')))}")
    lines.append(f"Time: {now.strftime('%Y-%m-%d %H:%M:%S UTC')}")
    return "\n".join(lines)


class TelegramNotifier:
    """Send messages through the Telegram Bot API ``sendMessage`` method.

    Disabled (every send returns False) unless both a bot token and a chat id
    are configured.
    """

    def __init__(self, bot_token: Optional[str], chat_id: Optional[str], *, base_url: str = TELEGRAM_API, timeout: float = 10):
        self._bot_token = bot_token
        self.chat_id = chat_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: NotificationConfig, **kwargs) -> "TelegramNotifier":
        return cls(config.telegram_bot_token, config.telegram_chat_id, **kwargs)

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self.chat_id)

    def __repr__(self) -> str:
        return f"TelegramNotifier(enabled={self.enabled}, chat_id={self.chat_id!r})"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def send_message(self, text: str, parse_mode: str = "HTML") -> bool:
        """Returns True if Telegram accepted the message."""
        if not self.enabled:
            logger.debug("Telegram not configured; notification skipped")
            return False

        payload = {"chat_id": self.chat_id, "text": text, "parse_mode": parse_mode, "disable_web_page_preview": True}
        url = f"{self.base_url}/bot{self._bot_token}/sendMessage"
        try:
            session = await self._get_session()
            async with session.post(url, json=payload) as resp:
                if resp.status == 200:
                    logger.debug("Telegram notification sent")
                    return True
                body = await resp.text()
                logger.error(f"Telegram API error: {resp.status} - {body[:200]}")
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # the URL carries the bot token; log only the error type
            logger.error(f"Telegram send failed: {type(e).__name__}")
            return False

    async def send_trade_alert(self, trade: Dict[str, Any]) -> bool:
        return await self.send_message(format_trade_alert(trade))
