"""
Dispatcher component: delivers one notification per dispatch-eligible record
and writes the durable sent mark only after the notifier confirmed delivery.
"""
import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from core import constants
from core.exceptions import DispatchError
from core.interfaces import INotifier, IStateStore
from core.logger import get_logger
from core.performance import get_performance_monitor
from models.run import ClassifiedRecord, DispatchContext, DispatchResult

logger = get_logger(__name__)


class Dispatcher:
    def __init__(
        self,
        notifier: INotifier,
        store: IStateStore,
        timeout: float = constants.DEFAULT_DISPATCH_TIMEOUT_SECONDS,
    ):
        self.notifier = notifier
        self.store = store
        self.timeout = timeout

    async def _deliver(self, classified: ClassifiedRecord, context: DispatchContext) -> Optional[int]:
        """Sends through the notifier. Any failure comes back as DispatchError."""
        try:
            return await asyncio.wait_for(
                self.notifier.send(classified.updated, context),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise DispatchError(
                f"Dispatch failed for {classified.number}: timed out after {self.timeout}s"
            ) from e
        except Exception as e:
            raise DispatchError(f"Dispatch failed for {classified.number}: {e}") from e

    async def dispatch(self, classified: ClassifiedRecord, context: DispatchContext) -> DispatchResult:
        """
        Delivers a single record.

        A PersistenceError while writing the sent mark is not caught: the
        message went out but the store cannot record it, which the caller
        treats as fatal for the cycle.
        """
        perf = get_performance_monitor()
        try:
            with perf.measure("dispatch", context={"number": classified.number}):
                message_id = await self._deliver(classified, context)
        except DispatchError as e:
            logger.error(f"[DISPATCHER] {e.message}")
            return DispatchResult(number=classified.number, success=False, error=e.message)

        sent = classified.updated.mark_sent(datetime.now(timezone.utc))
        self.store.upsert_record(sent)

        logger.info(
            f"[DISPATCHER] Delivered {classified.number} ({classified.classification.value})",
            context={"message_id": message_id},
        )
        return DispatchResult(number=classified.number, success=True, message_id=message_id)

    async def dispatch_all(
        self, classified_records: List[ClassifiedRecord], context: DispatchContext
    ) -> List[DispatchResult]:
        """Sequential delivery; one record failing does not stop the others."""
        results = []
        for classified in classified_records:
            per_record = context.model_copy(update={"classification": classified.classification})
            results.append(await self.dispatch(classified, per_record))
        return results
