"""
Telegram notification service.
"""
import aiohttp
import asyncio
from datetime import datetime, timezone
from typing import Dict, Optional

from core import constants
from core.config import Settings, settings
from core.exceptions import NotifierError
from core.logger import get_logger
from models.record import Record, StoreStatistics
from models.run import DispatchContext
from services.notification.formatters import (
    create_alert_message,
    create_notification_message,
    create_status_message,
)

logger = get_logger(__name__)


class TelegramNotifier:
    """Handles all Telegram-specific notification logic."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or settings
        self.telegram_token = self.config.TELEGRAM_TOKEN
        self.chat_id = self.config.TELEGRAM_CHAT_ID
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
        return self._session

    async def _send_telegram_api(
        self,
        session: aiohttp.ClientSession,
        method: str,
        payload: dict,
        retries: int = constants.TELEGRAM_MAX_RETRIES,
    ) -> Dict:
        """
        Helper to send Telegram API requests with rate limit handling (429).
        Raises NotifierError when the request cannot be delivered.
        """
        url = f"https://api.telegram.org/bot{self.telegram_token}/{method}"
        last_error = "no attempt made"

        for attempt in range(retries):
            try:
                async with session.post(url, json=payload) as resp:
                    if resp.status == 200:
                        return await resp.json()
                    elif resp.status == 429:
                        resp_json = await resp.json()
                        retry_after = resp_json.get("parameters", {}).get("retry_after", 5)
                        logger.warning(
                            f"[NOTIFIER] Telegram 429 (Too Many Requests). Waiting {retry_after}s..."
                        )
                        last_error = "rate limited (429)"
                        await asyncio.sleep(retry_after + 1)
                        continue
                    else:
                        body = await resp.text()
                        raise NotifierError(
                            f"Telegram API {method} failed (Status {resp.status})",
                            {"response": body[:200]},
                        )
            except aiohttp.ClientError as e:
                logger.error(f"[NOTIFIER] Telegram API request error: {e}")
                last_error = str(e)
                if attempt < retries - 1:
                    await asyncio.sleep(2)

        raise NotifierError(
            f"Telegram API {method} failed after {retries} attempts",
            {"last_error": last_error},
        )

    async def send_text(self, text: str, chat_id: Optional[str] = None) -> Optional[int]:
        """Sends an HTML message and returns its Message ID."""
        if not self.telegram_token or not (chat_id or self.chat_id):
            raise NotifierError("Telegram is not configured (TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID)")

        payload = {
            "chat_id": chat_id or self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        result = await self._send_telegram_api(self._get_session(), "sendMessage", payload)
        return result.get("result", {}).get("message_id")

    async def send(self, record: Record, context: DispatchContext) -> Optional[int]:
        """
        Sends a notified case to Telegram. Returns the Message ID.
        """
        msg = create_notification_message(record, context, self.config.PORTAL_TIMEZONE)
        message_id = await self.send_text(msg)
        logger.info(f"[NOTIFIER] Telegram message sent for {record.number} (ID: {message_id})")
        return message_id

    async def send_status(self, stats: StoreStatistics, delivered: int) -> Optional[int]:
        msg = create_status_message(
            stats,
            delivered,
            self.config.CHECK_INTERVAL_MINUTES,
            datetime.now(timezone.utc),
            self.config.PORTAL_TIMEZONE,
        )
        return await self.send_text(msg)

    async def send_alert(self, error: str, context: Optional[str] = None) -> Optional[int]:
        msg = create_alert_message(error, context, datetime.now(timezone.utc), self.config.PORTAL_TIMEZONE)
        return await self.send_text(msg, chat_id=self.config.TELEGRAM_ERROR_CHAT_ID)

    async def test_connection(self) -> bool:
        """getMe round trip, used by the --test-login report."""
        try:
            result = await self._send_telegram_api(self._get_session(), "getMe", {})
        except NotifierError as e:
            logger.error(f"[NOTIFIER] Telegram connectivity check failed: {e}")
            return False
        username = result.get("result", {}).get("username")
        logger.info(f"[NOTIFIER] Telegram bot reachable (@{username})")
        return True

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
