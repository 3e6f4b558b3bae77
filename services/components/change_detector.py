"""
ChangeDetector component: classifies a scrape snapshot against stored records.
Pure and deterministic for a given (snapshot, stored state) pair; the clock
only feeds last_checked_at.
"""
from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from core import constants
from core.logger import get_logger
from models.record import ObservedRecord, Record
from models.run import Classification, ClassifiedRecord

logger = get_logger(__name__)


class ChangeDetector:
    """
    Decides, for every observed case, whether a notification must be
    attempted this cycle and what should be written back to the store.
    """

    def __init__(self, repeat_policy: str = constants.DEFAULT_REPEAT_POLICY):
        """
        Args:
            repeat_policy: "details" re-dispatches an already-sent case whose
                scraped notification details changed; "never" suppresses it.
        """
        self.repeat_policy = repeat_policy

    def classify(
        self,
        observed: Iterable[ObservedRecord],
        stored: Mapping[str, Record],
        now: datetime,
    ) -> List[ClassifiedRecord]:
        """
        Classifies each observed record.

        Args:
            observed: Snapshot returned by the scraper
            stored: Stored records keyed by case number (missing key = never seen)
            now: Timestamp written to last_checked_at

        Returns:
            One ClassifiedRecord per distinct case number, in snapshot order
        """
        results: List[ClassifiedRecord] = []
        seen = set()

        for item in observed:
            if item.number in seen:
                logger.warning(f"[CHANGE_DETECTOR] Duplicate case {item.number} in snapshot, keeping first")
                continue
            seen.add(item.number)

            previous = stored.get(item.number)
            classification = self._classify_one(item, previous)
            results.append(
                ClassifiedRecord(
                    observed=item,
                    previous=previous,
                    updated=self.merge(item, previous, now),
                    classification=classification,
                )
            )

        return results

    def _classify_one(self, item: ObservedRecord, previous: Optional[Record]) -> Classification:
        if previous is None:
            logger.debug(f"[CHANGE_DETECTOR] New case {item.number}")
            return Classification.NEW

        if not item.has_notification:
            return Classification.UNCHANGED

        if not previous.has_notification:
            logger.info(f"[CHANGE_DETECTOR] Notification appeared on {item.number}")
            return Classification.CHANGED_TO_NOTIFIED

        if not previous.notification_sent:
            # Flag already stored but never delivered (earlier dispatch failed)
            logger.info(f"[CHANGE_DETECTOR] Undelivered notification on {item.number}, retrying")
            return Classification.PENDING_RETRY

        if self._is_repeat(item, previous):
            logger.info(f"[CHANGE_DETECTOR] Possible new notification on {item.number}")
            return Classification.POSSIBLE_REPEAT

        return Classification.UNCHANGED

    def _is_repeat(self, item: ObservedRecord, previous: Record) -> bool:
        if self.repeat_policy == constants.REPEAT_POLICY_NEVER:
            return False
        new_details = (item.notification_details or "").strip()
        old_details = (previous.notification_details or "").strip()
        return bool(new_details) and new_details != old_details

    @staticmethod
    def merge(item: ObservedRecord, previous: Optional[Record], now: datetime) -> Record:
        """Builds the record to write back. Delivery state is carried over unchanged."""
        if previous is None:
            return Record(
                number=item.number,
                title=item.title,
                has_notification=item.has_notification,
                last_checked_at=now,
                notification_details=item.notification_details,
            )

        return previous.model_copy(
            update={
                "title": item.title or previous.title,
                "has_notification": item.has_notification,
                "last_checked_at": now,
                "notification_details": item.notification_details or previous.notification_details,
            }
        )

    @staticmethod
    def summarize(classified: Iterable[ClassifiedRecord]) -> Dict[str, int]:
        counts = Counter(c.classification.value for c in classified)
        return dict(sorted(counts.items()))
