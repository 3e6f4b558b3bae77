"""
Unit tests for the Bot entrypoint.

Tests cover:
- Startup status summary and stop alert around continuous monitoring
- Construction failures reported as a fatal error exit code
"""

import pytest
from unittest.mock import AsyncMock, patch

import main
from core.exceptions import NotifierError, PersistenceError
from models.run import VerificationRun


@pytest.fixture
def bot(test_settings):
    bot = main.Bot(config=test_settings)
    bot.validate_startup = AsyncMock(return_value=True)
    bot.notifier.send_status = AsyncMock(return_value=1)
    bot.notifier.send_alert = AsyncMock(return_value=2)
    bot.scheduler.start = AsyncMock()
    bot.scheduler.shutdown = AsyncMock()
    return bot


class TestBotLifecycle:
    """Test suite for start and shutdown announcements"""

    @pytest.mark.asyncio
    async def test_start_announces_status_then_stop(self, bot):
        exit_code = await bot.start()

        assert exit_code == 0
        bot.notifier.send_status.assert_awaited_once()
        assert bot.notifier.send_status.call_args.kwargs["delivered"] == 0
        bot.notifier.send_alert.assert_awaited_once()
        assert "Monitoreo detenido" in bot.notifier.send_alert.call_args.args[0]
        bot.scheduler.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_alert_sent_once(self, bot):
        await bot.start()
        await bot.shutdown()

        bot.notifier.send_alert.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_once_sends_no_stop_alert(self, bot, now):
        bot.scheduler.trigger_now = AsyncMock(return_value=VerificationRun(timestamp=now, success=True))

        exit_code = await bot.run_once()

        assert exit_code == 0
        bot.notifier.send_status.assert_not_called()
        bot.notifier.send_alert.assert_not_called()

    @pytest.mark.asyncio
    async def test_startup_status_failure_is_not_fatal(self, bot):
        bot.notifier.send_status = AsyncMock(side_effect=NotifierError("chat not found"))

        exit_code = await bot.start()

        assert exit_code == 0
        bot.scheduler.start.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_validation_skips_announcements(self, bot):
        bot.validate_startup = AsyncMock(return_value=False)

        exit_code = await bot.start()

        assert exit_code == 1
        bot.notifier.send_status.assert_not_called()
        bot.notifier.send_alert.assert_not_called()


class TestMain:
    """Test suite for the command line entrypoint"""

    def test_store_failure_exits_with_error(self):
        with patch("main.Bot", side_effect=PersistenceError("SUPABASE_URL is missing")):
            assert main.main(["--status"]) == 1

    def test_reset_requires_confirmation(self):
        with pytest.raises(SystemExit):
            main.main(["--reset"])
