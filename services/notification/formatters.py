"""
Message formatting utilities for notifications.
Provides text helpers and the HTML messages sent to Telegram.
"""

import html
from datetime import datetime
from typing import Optional

import pytz

from core import constants
from models.record import Record, StoreStatistics
from models.run import Classification, DispatchContext

# Classification -> header emoji
CLASSIFICATION_EMOJIS = {
    Classification.NEW: "🔔",
    Classification.CHANGED_TO_NOTIFIED: "🔔",
    Classification.PENDING_RETRY: "🔁",
    Classification.POSSIBLE_REPEAT: "🔄",
}

FOOTER = "🤖 <i>Notificación generada automáticamente por el monitor del portal</i>"


def escape_html(text: str) -> str:
    """HTML escape for safe display."""
    return html.escape(text or "")


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate text to max length with suffix."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix


def format_local_time(dt: datetime, tz_name: str = constants.DEFAULT_TIMEZONE) -> str:
    """Render a datetime in the portal timezone. Naive datetimes are taken as UTC."""
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt.astimezone(pytz.timezone(tz_name)).strftime("%d/%m/%Y %H:%M")


def create_notification_message(
    record: Record,
    context: DispatchContext,
    tz_name: str = constants.DEFAULT_TIMEZONE,
) -> str:
    """
    Create the Telegram message for one notified case.

    Args:
        record: Record being delivered
        context: Why it is being delivered (classification, trigger)
        tz_name: Timezone used for the displayed date

    Returns:
        Telegram message HTML string
    """
    emoji = CLASSIFICATION_EMOJIS.get(context.classification, "🔔")

    msg = f"{emoji} <b>NUEVA NOTIFICACIÓN JUDICIAL</b>\n\n"
    msg += f"📋 <b>Expediente:</b> <code>{escape_html(record.number)}</code>\n"
    msg += f"📄 <b>Carátula:</b> {escape_html(truncate_text(record.title, constants.TITLE_TRUNCATE_LENGTH))}\n"
    msg += f"📅 <b>Fecha:</b> {format_local_time(record.last_checked_at, tz_name)}"

    if record.notification_details:
        details = truncate_text(record.notification_details, constants.DETAILS_TRUNCATE_LENGTH)
        msg += f"\n\n📝 <b>Detalle:</b> {escape_html(details)}"

    if context.classification == Classification.POSSIBLE_REPEAT:
        msg += "\n\n⚠️ <b>Posible nueva notificación en un expediente ya notificado</b>"

    if context.trigger != "scheduled":
        msg += f"\n🔍 <i>Verificación: {escape_html(context.trigger)}</i>"

    msg += f"\n\n{FOOTER}"
    return truncate_text(msg, constants.TELEGRAM_MAX_MESSAGE_LENGTH)


def create_status_message(
    stats: StoreStatistics,
    delivered: int,
    interval_minutes: int,
    now: datetime,
    tz_name: str = constants.DEFAULT_TIMEZONE,
) -> str:
    """System status summary sent after a cycle that delivered notifications."""
    msg = "📊 <b>ESTADO DEL SISTEMA</b>\n\n"
    msg += "🔄 <b>Sistema:</b> ✅ Operativo\n"
    msg += f"📅 <b>Verificación:</b> {format_local_time(now, tz_name)}\n\n"
    msg += "📊 <b>Estadísticas:</b>\n"
    msg += f"📋 Expedientes monitoreados: {stats.total_records}\n"
    msg += f"🔔 Con notificaciones: {stats.records_with_notification}\n"
    msg += f"⏳ Pendientes de envío: {stats.pending_unsent}\n"
    msg += f"📤 Enviadas: {stats.notifications_sent}\n\n"
    msg += f"⏰ <b>Próxima verificación:</b> En {interval_minutes} minutos\n\n"

    if delivered > 0:
        msg += f"🎉 <b>Se enviaron {delivered} notificaciones nuevas</b>"
    else:
        msg += "😴 <b>No hay notificaciones nuevas</b>"
    return msg


def create_alert_message(
    error: str,
    context: Optional[str],
    now: datetime,
    tz_name: str = constants.DEFAULT_TIMEZONE,
) -> str:
    """Loud alert for a failed cycle."""
    msg = "🚨 <b>ERROR CRÍTICO - MONITOR</b>\n\n"
    msg += f"❌ <b>Error:</b> {escape_html(truncate_text(error, 1000))}\n"
    msg += f"📅 <b>Timestamp:</b> {format_local_time(now, tz_name)}\n"
    if context:
        msg += f"🔍 <b>Contexto:</b> {escape_html(truncate_text(context, 1000))}\n"
    msg += "\n⚠️ <b>El monitoreo puede estar interrumpido</b>"
    return msg
