"""
Notification package: Telegram delivery channel and message formatters.
"""

from services.notification import formatters
from services.notification.telegram import TelegramNotifier

__all__ = ["formatters", "TelegramNotifier"]
