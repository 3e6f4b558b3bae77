import asyncio
import aiohttp
import html
import pytz
import traceback
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, List
from enum import Enum
from collections import defaultdict
from core import constants
from core.config import Settings, settings
from core.logger import get_logger

logger = get_logger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels"""
    CRITICAL = "🔴 CRITICAL"
    HIGH = "🟠 HIGH"
    MEDIUM = "🟡 MEDIUM"
    LOW = "🟢 LOW"


class ErrorNotifier:
    """Loud alerts for failed cycles, rate limited per error key"""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or settings
        self.error_history: Dict[str, List[datetime]] = defaultdict(list)
        self.max_errors_per_hour = constants.MAX_ALERTS_PER_HOUR
        self.notification_cooldown = timedelta(hours=1)

    def _should_notify(self, error_key: str, now: Optional[datetime] = None) -> bool:
        """
        Check if notification should be sent based on rate limiting.

        Args:
            error_key: Unique identifier for the error type
            now: Clock override for tests

        Returns:
            True if notification should be sent, False otherwise
        """
        now = now or datetime.now(timezone.utc)

        # Drop alerts older than the cooldown window
        self.error_history[error_key] = [
            timestamp for timestamp in self.error_history[error_key]
            if now - timestamp < self.notification_cooldown
        ]

        if len(self.error_history[error_key]) >= self.max_errors_per_hour:
            logger.warning(
                f"[ALERT] Rate limit exceeded for '{error_key}' "
                f"({len(self.error_history[error_key])}/{self.max_errors_per_hour})"
            )
            return False

        self.error_history[error_key].append(now)
        return True

    async def send_critical_error(
        self,
        error_message: str,
        exception: Optional[Exception] = None,
        context: Optional[Dict] = None,
        severity: ErrorSeverity = ErrorSeverity.CRITICAL
    ) -> bool:
        """
        Send critical error notification to the Telegram alert chat.

        Args:
            error_message: Human-readable error description
            exception: Optional exception object
            context: Optional context dictionary (e.g., {"trigger": "manual"})
            severity: Error severity level

        Returns:
            True if notification was sent successfully
        """
        error_key = f"{severity.name}:{error_message[:50]}"

        if not self._should_notify(error_key):
            return False

        logger.error(f"[ALERT] Sending error notification: {error_message}", context=context or {})

        error_details = {
            "message": error_message,
            "severity": severity.value,
            "timestamp": self._format_timestamp(datetime.now(timezone.utc)),
            "context": context or {}
        }

        if exception is not None:
            error_details["exception_type"] = type(exception).__name__
            error_details["exception_message"] = str(exception)
            error_details["traceback"] = "".join(
                traceback.format_exception(type(exception), exception, exception.__traceback__)
            )

        if not self.config.TELEGRAM_TOKEN or not self.config.TELEGRAM_ERROR_CHAT_ID:
            logger.warning("[ALERT] No notification channel configured for error alerts")
            return False

        async with aiohttp.ClientSession() as session:
            return await self._send_telegram_error(session, error_details)

    def _format_timestamp(self, dt: datetime) -> str:
        local = dt.astimezone(pytz.timezone(self.config.PORTAL_TIMEZONE))
        return local.strftime("%Y-%m-%d %H:%M:%S %Z")

    def _build_message(self, error_details: Dict) -> str:
        msg_parts = [
            f"<b>{error_details['severity']} Monitor Error</b>",
            "",
            "📝 <b>Message:</b>",
            html.escape(error_details["message"]),
        ]

        if error_details["context"]:
            msg_parts.append("")
            msg_parts.append("📋 <b>Context:</b>")
            for k, v in error_details["context"].items():
                msg_parts.append(f"  • <b>{k}:</b> {html.escape(str(v))}")

        if "exception_type" in error_details:
            msg_parts.append("")
            msg_parts.append("⚠️ <b>Exception:</b>")
            msg_parts.append(
                f"<code>{error_details['exception_type']}: "
                f"{html.escape(error_details['exception_message'])}</code>"
            )

        if "traceback" in error_details:
            msg_parts.append("")
            msg_parts.append("🔍 <b>Traceback:</b>")
            traceback_preview = error_details["traceback"][-300:]
            if len(error_details["traceback"]) > 300:
                traceback_preview = "(truncated) ...\n" + traceback_preview
            msg_parts.append(f"<pre>{html.escape(traceback_preview)}</pre>")

        msg_parts.append("")
        msg_parts.append(f"🕐 {error_details['timestamp']}")
        return "\n".join(msg_parts)

    async def _send_telegram_error(
        self,
        session: aiohttp.ClientSession,
        error_details: Dict
    ) -> bool:
        """Send error notification to Telegram"""
        payload = {
            'chat_id': self.config.TELEGRAM_ERROR_CHAT_ID,
            'text': self._build_message(error_details),
            'parse_mode': 'HTML',
            'disable_web_page_preview': True
        }
        url = f"https://api.telegram.org/bot{self.config.TELEGRAM_TOKEN}/sendMessage"

        try:
            async with session.post(url, json=payload, timeout=aiohttp.ClientTimeout(total=10)) as resp:
                if resp.status == 200:
                    logger.info("[ALERT] Error notification sent to Telegram")
                    return True
                error_text = await resp.text()
                logger.error(f"[ALERT] Telegram error notification failed: {resp.status} - {error_text}")
                return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"[ALERT] Failed to send Telegram error notification: {e}")
            return False


# Global instance
_error_notifier = None

def get_error_notifier() -> ErrorNotifier:
    """Get singleton error notifier instance"""
    global _error_notifier
    if _error_notifier is None:
        _error_notifier = ErrorNotifier()
    return _error_notifier
