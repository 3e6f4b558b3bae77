"""
Run orchestrator: one verification cycle end to end.

session -> scrape -> classify -> dispatch -> persist -> run history

At most one cycle is in flight per MonitorService. A second request while a
cycle runs returns a skipped run instead of waiting.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from core.config import Settings, settings
from core.error_notifier import ErrorNotifier, ErrorSeverity, get_error_notifier
from core.exceptions import AuthenticationError, MonitorException, PersistenceError, ScrapeError, SessionExpiredError
from core.interfaces import INotifier, IScraperAdapter, IStateStore
from core.logger import get_logger
from core.performance import get_performance_monitor
from models.record import Record
from models.run import Classification, ClassifiedRecord, DispatchContext, MonitorStatus, VerificationRun
from services.components.change_detector import ChangeDetector
from services.components.dispatcher import Dispatcher
from services.session.session_manager import SessionManager

logger = get_logger(__name__)

SKIPPED_MESSAGE = "Verification already in progress"


class MonitorService:
    def __init__(
        self,
        session_manager: SessionManager,
        scraper: IScraperAdapter,
        store: IStateStore,
        notifier: INotifier,
        detector: Optional[ChangeDetector] = None,
        dispatcher: Optional[Dispatcher] = None,
        error_notifier: Optional[ErrorNotifier] = None,
        config: Optional[Settings] = None,
    ):
        self.config = config or settings
        self.session_manager = session_manager
        self.scraper = scraper
        self.store = store
        self.notifier = notifier
        self.detector = detector or ChangeDetector(self.config.REPEAT_POLICY)
        self.dispatcher = dispatcher or Dispatcher(notifier, store, self.config.DISPATCH_TIMEOUT_SECONDS)
        self.error_notifier = error_notifier or get_error_notifier()

        self._status = MonitorStatus()
        self._is_verifying = False

    @property
    def is_verifying(self) -> bool:
        return self._is_verifying

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.config.check_interval_seconds)

    def mark_running(self, running: bool) -> None:
        self._status.is_running = running

    async def run_cycle(self, trigger: str = "scheduled") -> VerificationRun:
        """
        Runs one verification cycle. Never raises: every failure ends up in
        the returned VerificationRun.
        """
        started = datetime.now(timezone.utc)

        # Check-and-set with no await in between
        if self._is_verifying:
            logger.warning(f"[MONITOR] {SKIPPED_MESSAGE}, skipping {trigger} run")
            return VerificationRun(
                timestamp=started,
                success=False,
                skipped=True,
                errors=[SKIPPED_MESSAGE],
                trigger=trigger,
            )
        self._is_verifying = True

        self._status.total_checks += 1
        self._status.last_check = started
        run = VerificationRun(timestamp=started, trigger=trigger)
        fatal: Optional[str] = None
        fatal_exc: Optional[BaseException] = None

        logger.info(f"[MONITOR] Verification started ({trigger})")
        perf = get_performance_monitor()

        try:
            with perf.measure("cycle", context={"trigger": trigger}) as timer:
                try:
                    await self._execute(run, started)
                except AuthenticationError as e:
                    fatal, fatal_exc = f"Authentication failed: {e}", e
                except ScrapeError as e:
                    fatal, fatal_exc = f"Scrape failed: {e}", e
                except PersistenceError as e:
                    fatal, fatal_exc = f"State store failure: {e}", e
                except MonitorException as e:
                    fatal, fatal_exc = str(e), e
                except Exception as e:
                    logger.critical(f"[MONITOR] Unexpected error in cycle: {e}", exc_info=True)
                    fatal, fatal_exc = f"Unexpected error: {type(e).__name__}: {e}", e
            run.duration_ms = timer.duration_ms
        finally:
            self._is_verifying = False

        if fatal:
            run.errors.append(fatal)
        run.success = fatal is None

        try:
            self.store.append_run(run)
        except PersistenceError as e:
            logger.error(f"[MONITOR] Could not record verification run: {e}")
            if not fatal:
                fatal, fatal_exc = f"Run history not recorded: {e}", e
                run = run.model_copy(update={"success": False, "errors": run.errors + [fatal]})

        self._finish(run, fatal)

        if fatal:
            logger.error(f"[MONITOR] Verification failed: {fatal}", duration_ms=run.duration_ms)
            await self.error_notifier.send_critical_error(
                "Verification cycle failed",
                exception=fatal_exc if isinstance(fatal_exc, Exception) else None,
                context={"trigger": trigger, "error": fatal},
                severity=ErrorSeverity.CRITICAL,
            )
        else:
            logger.info(
                f"[MONITOR] Verification finished: {run.records_observed} observed, "
                f"{run.new_notifications} new, {run.notifications_delivered} delivered, "
                f"{len(run.errors)} errors",
                duration_ms=run.duration_ms,
            )
            await self._maybe_send_status(run)

        return run

    async def _execute(self, run: VerificationRun, started: datetime) -> None:
        credential = await self.session_manager.ensure_valid_session()

        try:
            result = await self.scraper.scrape(credential)
        except SessionExpiredError:
            self.session_manager.invalidate()
            raise

        run.records_observed = len(result.records)
        run.errors.extend(result.errors)

        numbers = [r.number for r in result.records]
        stored = self.store.get_records(numbers) if numbers else {}
        classified = self.detector.classify(result.records, stored, datetime.now(timezone.utc))
        logger.info(f"[MONITOR] Classification: {self.detector.summarize(classified)}")

        eligible = [c for c in classified if c.dispatch_eligible]
        run.new_notifications = len(eligible)

        context = DispatchContext(
            classification=Classification.NEW,
            trigger=run.trigger,
            run_started_at=started,
        )
        results = await self.dispatcher.dispatch_all(eligible, context)

        delivered = {r.number for r in results if r.success}
        run.notifications_delivered = len(delivered)
        run.errors.extend(r.error for r in results if not r.success and r.error)

        for item in classified:
            if item.number in delivered:
                continue
            self.store.upsert_record(self._record_to_persist(item))

    @staticmethod
    def _record_to_persist(item: ClassifiedRecord) -> Record:
        """
        A repeat that failed to deliver keeps the stored details, so the
        next cycle sees the difference again.
        """
        if item.classification == Classification.POSSIBLE_REPEAT and item.previous is not None:
            return item.updated.model_copy(
                update={"notification_details": item.previous.notification_details}
            )
        return item.updated

    def _finish(self, run: VerificationRun, fatal: Optional[str]) -> None:
        self._status.next_check = datetime.now(timezone.utc) + self.interval
        if fatal:
            self._status.failed_checks += 1
            self._status.last_error = fatal
        else:
            self._status.successful_checks += 1
            self._status.last_error = None

    async def _maybe_send_status(self, run: VerificationRun) -> None:
        if not self.config.SEND_STATUS_SUMMARY or run.notifications_delivered == 0:
            return
        send_status = getattr(self.notifier, "send_status", None)
        if send_status is None:
            return
        try:
            await send_status(self.store.get_statistics(), run.notifications_delivered)
        except MonitorException as e:
            logger.warning(f"[MONITOR] Status summary not sent: {e}")

    def get_status(self) -> MonitorStatus:
        return self._status.model_copy()

    def get_statistics(self) -> Dict:
        return {
            "monitor": self.get_status(),
            "store": self.store.get_statistics(),
        }

    def get_pending(self) -> List[Record]:
        return self.store.get_pending_unsent()

    def recent_runs(self, limit: int = 20) -> List[VerificationRun]:
        return self.store.get_runs(limit)
