"""
Unit tests for TelegramNotifier and ErrorNotifier.
"""

import aiohttp
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, Mock, patch

from core.error_notifier import ErrorNotifier, ErrorSeverity
from core.exceptions import NotifierError
from models.record import StoreStatistics
from models.run import Classification, DispatchContext
from services.notification.telegram import TelegramNotifier


def make_response(status, json_data=None, text=""):
    resp = Mock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_data or {})
    resp.text = AsyncMock(return_value=text)
    cm = MagicMock()
    cm.__aenter__.return_value = resp
    cm.__aexit__.return_value = False
    return cm


def make_session(*responses):
    session = MagicMock()
    session.closed = False
    session.post.side_effect = list(responses)
    return session


class TestTelegramNotifier:
    """Test suite for TelegramNotifier"""

    @pytest.fixture
    def notifier(self, test_settings):
        return TelegramNotifier(test_settings)

    @pytest.mark.asyncio
    async def test_send_returns_message_id(self, notifier, make_record, now):
        session = make_session(make_response(200, {"ok": True, "result": {"message_id": 321}}))
        notifier._session = session
        context = DispatchContext(classification=Classification.NEW, run_started_at=now)

        message_id = await notifier.send(make_record("100/2024", has_notification=True), context)

        assert message_id == 321
        payload = session.post.call_args.kwargs["json"]
        assert payload["chat_id"] == "-1001"
        assert payload["parse_mode"] == "HTML"
        assert "100/2024" in payload["text"]

    @pytest.mark.asyncio
    async def test_rate_limit_waits_and_retries(self, notifier):
        session = make_session(
            make_response(429, {"ok": False, "parameters": {"retry_after": 3}}),
            make_response(200, {"ok": True, "result": {"message_id": 1}}),
        )

        with patch("services.notification.telegram.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await notifier._send_telegram_api(session, "sendMessage", {"text": "hi"})

        assert result["result"]["message_id"] == 1
        sleep.assert_awaited_once_with(4)

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted_raises(self, notifier):
        session = make_session(*[make_response(429, {"parameters": {"retry_after": 1}}) for _ in range(3)])

        with patch("services.notification.telegram.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(NotifierError):
                await notifier._send_telegram_api(session, "sendMessage", {"text": "hi"})

        assert session.post.call_count == 3

    @pytest.mark.asyncio
    async def test_api_error_raises(self, notifier):
        session = make_session(make_response(400, text='{"description": "chat not found"}'))

        with pytest.raises(NotifierError) as exc_info:
            await notifier._send_telegram_api(session, "sendMessage", {"text": "hi"})

        assert "400" in str(exc_info.value)
        assert session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_network_error_is_retried(self, notifier):
        session = MagicMock()
        session.post.side_effect = [
            aiohttp.ClientConnectionError("reset"),
            make_response(200, {"ok": True, "result": {"message_id": 5}}),
        ]

        with patch("services.notification.telegram.asyncio.sleep", new=AsyncMock()):
            result = await notifier._send_telegram_api(session, "sendMessage", {"text": "hi"})

        assert result["result"]["message_id"] == 5

    @pytest.mark.asyncio
    async def test_unconfigured_raises(self, test_settings, make_record, now):
        test_settings.TELEGRAM_TOKEN = None
        notifier = TelegramNotifier(test_settings)
        context = DispatchContext(classification=Classification.NEW, run_started_at=now)

        with pytest.raises(NotifierError):
            await notifier.send(make_record(), context)

    @pytest.mark.asyncio
    async def test_close(self, notifier):
        session = MagicMock()
        session.closed = False
        session.close = AsyncMock()
        notifier._session = session

        await notifier.close()

        session.close.assert_awaited_once()
        assert notifier._session is None


class TestErrorNotifier:
    """Test suite for ErrorNotifier rate limiting"""

    def test_rate_limit_per_key(self, test_settings):
        notifier = ErrorNotifier(test_settings)
        now = datetime(2024, 12, 1, 12, 0, tzinfo=timezone.utc)

        allowed = [notifier._should_notify("CRITICAL:cycle", now) for _ in range(7)]

        assert allowed == [True] * 5 + [False] * 2
        assert notifier._should_notify("CRITICAL:other", now)

    def test_rate_limit_window_expires(self, test_settings):
        notifier = ErrorNotifier(test_settings)
        now = datetime(2024, 12, 1, 12, 0, tzinfo=timezone.utc)
        for _ in range(5):
            notifier._should_notify("k", now)

        assert not notifier._should_notify("k", now + timedelta(minutes=59))
        assert notifier._should_notify("k", now + timedelta(hours=1, seconds=1))

    def test_message_includes_context_and_exception(self, test_settings):
        notifier = ErrorNotifier(test_settings)
        message = notifier._build_message(
            {
                "message": "Verification cycle failed",
                "severity": ErrorSeverity.CRITICAL.value,
                "timestamp": "2024-12-01T12:00:00+00:00",
                "context": {"trigger": "scheduled"},
                "exception_type": "AuthenticationError",
                "exception_message": "bad <password>",
            }
        )

        assert "Verification cycle failed" in message
        assert "<b>trigger:</b> scheduled" in message
        assert "bad &lt;password&gt;" in message

    def test_timestamp_in_portal_timezone(self, test_settings):
        notifier = ErrorNotifier(test_settings)

        stamp = notifier._format_timestamp(datetime(2024, 12, 1, 12, 0, tzinfo=timezone.utc))

        assert stamp.startswith("2024-12-01 09:00:00")

    @pytest.mark.asyncio
    async def test_unconfigured_does_not_send(self, test_settings):
        test_settings.TELEGRAM_TOKEN = None
        notifier = ErrorNotifier(test_settings)

        with patch("core.error_notifier.aiohttp.ClientSession") as session_cls:
            sent = await notifier.send_critical_error("boom")

        assert sent is False
        session_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_send_critical_error_posts_to_alert_chat(self, test_settings):
        notifier = ErrorNotifier(test_settings)
        session = make_session(make_response(200, {"ok": True}))
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__ = AsyncMock(return_value=False)

        with patch("core.error_notifier.aiohttp.ClientSession", return_value=session):
            sent = await notifier.send_critical_error("Verification cycle failed", context={"trigger": "manual"})

        assert sent is True
        payload = session.post.call_args.kwargs["json"]
        assert payload["chat_id"] == test_settings.TELEGRAM_ERROR_CHAT_ID == "-1001"
        assert "+00:00" not in payload["text"]


class TestTelegramNotifierExtras:
    """Status summary and alert routing"""

    @pytest.mark.asyncio
    async def test_send_alert_goes_to_error_chat(self, test_settings):
        test_settings.TELEGRAM_ERROR_CHAT_ID = "-2002"
        notifier = TelegramNotifier(test_settings)
        session = make_session(make_response(200, {"ok": True, "result": {"message_id": 11}}))
        notifier._session = session

        message_id = await notifier.send_alert("Scrape failed", "trigger=scheduled")

        assert message_id == 11
        payload = session.post.call_args.kwargs["json"]
        assert payload["chat_id"] == "-2002"
        assert "Scrape failed" in payload["text"]

    @pytest.mark.asyncio
    async def test_send_status(self, test_settings):
        notifier = TelegramNotifier(test_settings)
        session = make_session(make_response(200, {"ok": True, "result": {"message_id": 12}}))
        notifier._session = session

        await notifier.send_status(StoreStatistics(total_records=4, notifications_sent=2), delivered=2)

        assert "Expedientes monitoreados: 4" in session.post.call_args.kwargs["json"]["text"]
