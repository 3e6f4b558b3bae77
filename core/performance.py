import time
from contextlib import contextmanager
from typing import Dict, Optional
from collections import defaultdict
from core.logger import get_logger

logger = get_logger(__name__)


class Timer:
    """Elapsed-time holder yielded by PerformanceMonitor.measure()"""

    def __init__(self):
        self.started = time.monotonic()
        self.ended: Optional[float] = None

    def stop(self) -> None:
        if self.ended is None:
            self.ended = time.monotonic()

    @property
    def duration_ms(self) -> int:
        end = self.ended if self.ended is not None else time.monotonic()
        return int((end - self.started) * 1000)


class PerformanceMonitor:
    """Tracks durations of the cycle stages (probe, login, scrape, dispatch, cycle)"""

    def __init__(self):
        self.durations: Dict[str, list] = defaultdict(list)
        self.success_counts: Dict[str, int] = defaultdict(int)
        self.failure_counts: Dict[str, int] = defaultdict(int)

    @contextmanager
    def measure(self, operation_name: str, context: Optional[Dict] = None):
        """
        Context manager that times a block and yields the running Timer.

        Usage:
            with monitor.measure("scrape") as timer:
                await scraper.scrape(credential)
            run.duration_ms = timer.duration_ms
        """
        timer = Timer()
        failed = False

        try:
            yield timer
        except Exception:
            failed = True
            raise
        finally:
            timer.stop()
            self.durations[operation_name].append(timer.duration_ms)
            if failed:
                self.failure_counts[operation_name] += 1
                logger.warning(
                    f"[PERF] {operation_name} failed",
                    duration_ms=timer.duration_ms,
                    context=context or {},
                )
            else:
                self.success_counts[operation_name] += 1
                logger.debug(
                    f"[PERF] {operation_name} completed",
                    duration_ms=timer.duration_ms,
                    context=context or {},
                )

    def get_stats(self, operation_name: str) -> Dict:
        durations = self.durations.get(operation_name)
        if not durations:
            return {}

        return {
            "operation": operation_name,
            "count": len(durations),
            "success_count": self.success_counts[operation_name],
            "failure_count": self.failure_counts[operation_name],
            "avg_duration_ms": sum(durations) / len(durations),
            "min_duration_ms": min(durations),
            "max_duration_ms": max(durations),
        }

    def get_all_stats(self) -> Dict[str, Dict]:
        return {op_name: self.get_stats(op_name) for op_name in self.durations}

    def log_summary(self):
        all_stats = self.get_all_stats()

        if not all_stats:
            logger.info("[PERF] No performance metrics collected yet")
            return

        for op_name, stats in all_stats.items():
            logger.info(
                f"[PERF] {op_name}: {stats['count']} runs, "
                f"{stats['failure_count']} failed, "
                f"avg {stats['avg_duration_ms']:.0f}ms "
                f"(min {stats['min_duration_ms']}ms, max {stats['max_duration_ms']}ms)"
            )

    def reset(self):
        self.durations.clear()
        self.success_counts.clear()
        self.failure_counts.clear()


# Global instance
_performance_monitor = None


def get_performance_monitor() -> PerformanceMonitor:
    """Get singleton performance monitor instance"""
    global _performance_monitor
    if _performance_monitor is None:
        _performance_monitor = PerformanceMonitor()
    return _performance_monitor
