"""
Interval scheduler for verification cycles.
Runs one cycle immediately, then one every CHECK_INTERVAL_MINUTES until stopped.
"""
import asyncio
from typing import Optional

from core.logger import get_logger
from models.run import VerificationRun
from services.monitor_service import MonitorService

logger = get_logger(__name__)


class Scheduler:
    def __init__(self, monitor: MonitorService, interval_seconds: Optional[float] = None):
        self.monitor = monitor
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else monitor.config.check_interval_seconds
        )
        self.running = False
        self._stop_event = asyncio.Event()
        self._current: Optional[asyncio.Future] = None
        self._closed = False

    async def _run(self, trigger: str) -> VerificationRun:
        # Shielded so that cancelling the caller never interrupts a running cycle
        task = asyncio.ensure_future(self.monitor.run_cycle(trigger))
        if self._current is None or self._current.done():
            self._current = task
        return await asyncio.shield(task)

    async def start(self) -> None:
        """Blocks until stop() is called."""
        self.running = True
        self._stop_event.clear()
        self.monitor.mark_running(True)
        logger.info(f"[SCHEDULER] Started, interval {self.interval_seconds:.0f}s")

        try:
            while self.running:
                await self._run("scheduled")

                if not self.running:
                    break
                logger.info(f"[SCHEDULER] Next verification in {self.interval_seconds:.0f}s")
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                except asyncio.TimeoutError:
                    continue
        finally:
            self.running = False
            self.monitor.mark_running(False)
            logger.info("[SCHEDULER] Stopped")

    async def trigger_now(self) -> VerificationRun:
        """Manual cycle through the same single-flight guard. Skipped if one is running."""
        logger.info("[SCHEDULER] Manual verification requested")
        return await self._run("manual")

    def stop(self) -> None:
        if self.running:
            logger.info("[SCHEDULER] Stop requested")
        self.running = False
        self._stop_event.set()

    async def shutdown(self) -> None:
        """Stops scheduling, waits for the in-flight cycle, then releases resources."""
        self.stop()

        if self._current is not None and not self._current.done():
            logger.info("[SCHEDULER] Waiting for the running verification to finish...")
            await asyncio.shield(self._current)

        if self._closed:
            return
        self._closed = True

        try:
            await self.monitor.session_manager.close()
        finally:
            self.monitor.store.close()
            close_notifier = getattr(self.monitor.notifier, "close", None)
            if close_notifier is not None:
                await close_notifier()
        logger.info("[SCHEDULER] Shutdown complete")
