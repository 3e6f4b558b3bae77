import asyncio
import signal
import sys

# 1. Setup Logging First (to capture config errors)
from core.logger import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

# 2. Load Config
try:
    from core.config import settings
except Exception as e:
    logger.critical(f"Failed to load configuration: {e}", exc_info=True)
    sys.exit(1)

from core.error_notifier import get_error_notifier, ErrorSeverity
from core.exceptions import AuthenticationError, MonitorException, NotifierError, PersistenceError
from core.performance import get_performance_monitor
from repositories.store_factory import create_state_store
from services.components import ChangeDetector, Dispatcher
from services.monitor_service import MonitorService
from services.notification import TelegramNotifier
from services.scheduler import Scheduler
from services.scraper.browser import BrowserManager
from services.scraper.portal_scraper import PortalScraper
from services.session import CredentialStore, SessionManager
from services.session.authenticator import PlaywrightAuthenticator


class Bot:
    """Wires the monitor together and drives it from the command line."""

    def __init__(self, config=None):
        self.config = config or settings

        browser = BrowserManager(self.config)
        self.session_manager = SessionManager(
            PlaywrightAuthenticator(browser, self.config),
            CredentialStore(self.config.COOKIES_PATH),
            self.config,
        )
        self.store = create_state_store(self.config)
        self.notifier = TelegramNotifier(self.config)
        self.monitor = MonitorService(
            session_manager=self.session_manager,
            scraper=PortalScraper(browser, config=self.config),
            store=self.store,
            notifier=self.notifier,
            detector=ChangeDetector(self.config.REPEAT_POLICY),
            dispatcher=Dispatcher(self.notifier, self.store, self.config.DISPATCH_TIMEOUT_SECONDS),
            error_notifier=get_error_notifier(),
            config=self.config,
        )
        self.scheduler = Scheduler(self.monitor)
        self._monitoring = False

    async def validate_startup(self) -> bool:
        """Validate system requirements before starting"""
        logger.info("=" * 60)
        logger.info("Portal Notification Monitor - Starting Up")
        logger.info("=" * 60)

        # Check state store
        try:
            stats = self.store.get_statistics()
            logger.info(f"State store OK ({stats.total_records} records)")
        except PersistenceError as e:
            logger.critical(f"State store unavailable: {e}")
            await get_error_notifier().send_critical_error(
                "State store unavailable during startup",
                exception=e,
                severity=ErrorSeverity.CRITICAL,
            )
            return False

        logger.info(f"Backend: {self.config.STORE_BACKEND}")
        logger.info(f"Interval: {self.config.CHECK_INTERVAL_MINUTES} min")
        logger.info(f"Repeat policy: {self.config.REPEAT_POLICY}")
        logger.info(f"Log Level: {self.config.LOG_LEVEL}")

        validation_errors = self.config.validate_all()
        for msg in validation_errors:
            if "❌" in msg:
                logger.critical(msg)
            else:
                logger.warning(msg)

        if any("❌" in msg for msg in validation_errors):
            logger.critical("Configuration validation failed")
            return False

        logger.info("[OK] Startup validation passed")
        return True

    async def start(self):
        if not await self.validate_startup():
            await self.shutdown()
            logger.critical("Startup validation failed. Exiting...")
            return 1

        # Windows-compatible signal handling
        try:
            loop = asyncio.get_running_loop()
            if sys.platform != "win32":
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.add_signal_handler(sig, self.stop)
            else:
                signal.signal(signal.SIGINT, lambda s, f: self.stop())
                signal.signal(signal.SIGTERM, lambda s, f: self.stop())
        except (NotImplementedError, RuntimeError, ValueError) as e:
            logger.warning(f"Could not set up signal handlers: {e}")

        await self.announce_start()

        logger.info("Monitor started. Press Ctrl+C to stop.")
        logger.info("=" * 60)

        try:
            self._monitoring = True
            await self.scheduler.start()
        finally:
            await self.shutdown()
            get_performance_monitor().log_summary()
        logger.info("Monitor stopped cleanly")
        return 0

    async def run_once(self) -> int:
        if not await self.validate_startup():
            await self.shutdown()
            return 1
        try:
            run = await self.scheduler.trigger_now()
        finally:
            await self.shutdown()
        return 0 if run.success else 1

    async def show_status(self) -> int:
        try:
            stats = self.monitor.get_statistics()
            runs = self.monitor.recent_runs(5)
        except PersistenceError as e:
            logger.error(f"Could not read status: {e}")
            return 1
        finally:
            await self.shutdown()

        store = stats["store"]
        print("📊 Monitor status")
        print(f"  Records monitored:     {store.total_records}")
        print(f"  With notification:     {store.records_with_notification}")
        print(f"  Pending delivery:      {store.pending_unsent}")
        print(f"  Notifications sent:    {store.notifications_sent}")
        print("🕐 Recent verifications")
        if not runs:
            print("  (none)")
        for run in runs:
            mark = "✅" if run.success else "❌"
            print(
                f"  {mark} {run.timestamp.isoformat()} [{run.trigger}] "
                f"observed={run.records_observed} new={run.new_notifications} "
                f"delivered={run.notifications_delivered} ({run.duration_ms}ms)"
            )
            for err in run.errors[:3]:
                print(f"      - {err}")
        return 0

    async def show_pending(self) -> int:
        try:
            pending = self.monitor.get_pending()
        except PersistenceError as e:
            logger.error(f"Could not read pending records: {e}")
            return 1
        finally:
            await self.shutdown()

        print(f"⏳ {len(pending)} notifications pending delivery")
        for record in pending:
            print(f"  {record.number}  {record.title[:80]}")
        return 0

    async def reset(self) -> int:
        try:
            deleted = self.store.reset_records()
        except PersistenceError as e:
            logger.error(f"Reset failed: {e}")
            return 1
        finally:
            await self.shutdown()
        logger.warning(f"State store reset: {deleted} records deleted")
        return 0

    async def test_login(self) -> int:
        exit_code = 0
        try:
            await self.session_manager.ensure_valid_session()
            print("✅ Portal session is valid")
        except AuthenticationError as e:
            print(f"❌ Login failed: {e}")
            exit_code = 1

        try:
            if await self.notifier.test_connection():
                print("✅ Telegram bot reachable")
            else:
                print("⚠️ Telegram bot not reachable")
        finally:
            await self.shutdown()
        return exit_code

    def stop(self):
        if self.scheduler.running:
            logger.info("=" * 60)
            logger.info("Stopping Monitor...")
            logger.info("=" * 60)
        self.scheduler.stop()

    async def announce_start(self) -> None:
        """Status summary to the chat when continuous monitoring begins."""
        try:
            await self.notifier.send_status(self.store.get_statistics(), delivered=0)
        except (NotifierError, PersistenceError) as e:
            logger.warning(f"Could not send startup status: {e}")

    async def announce_stop(self) -> None:
        try:
            await self.notifier.send_alert(
                "Monitoreo detenido",
                f"Verificaciones realizadas: {self.monitor.get_status().total_checks}",
            )
        except NotifierError as e:
            logger.warning(f"Could not send stop alert: {e}")

    async def shutdown(self):
        if self._monitoring:
            self._monitoring = False
            await self.announce_stop()
        try:
            await self.scheduler.shutdown()
        except MonitorException as e:
            logger.warning(f"Error during shutdown: {e}")


def main(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Portal Notification Monitor")
    parser.add_argument("--once", action="store_true", help="Run a single verification and exit")
    parser.add_argument("--status", action="store_true", help="Show monitor and store statistics")
    parser.add_argument("--pending", action="store_true", help="List notifications not yet delivered")
    parser.add_argument("--reset", action="store_true", help="Delete every stored record (requires --yes)")
    parser.add_argument("--yes", action="store_true", help="Confirm --reset")
    parser.add_argument("--test-login", action="store_true", help="Check portal login and Telegram connectivity")
    args = parser.parse_args(argv)

    if args.reset and not args.yes:
        parser.error("--reset deletes all stored records; confirm with --yes")

    exit_code = 0

    try:
        bot = Bot()
        if args.status:
            exit_code = asyncio.run(bot.show_status())
        elif args.pending:
            exit_code = asyncio.run(bot.show_pending())
        elif args.reset:
            exit_code = asyncio.run(bot.reset())
        elif args.test_login:
            exit_code = asyncio.run(bot.test_login())
        elif args.once:
            logger.info("Running in --once mode")
            exit_code = asyncio.run(bot.run_once())
        else:
            exit_code = asyncio.run(bot.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        exit_code = 1

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
