from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from models.record import ObservedRecord, Record


class Classification(str, Enum):
    NEW = "new"
    CHANGED_TO_NOTIFIED = "changed_to_notified"
    POSSIBLE_REPEAT = "possible_repeat"
    PENDING_RETRY = "pending_retry"
    UNCHANGED = "unchanged"


class ClassifiedRecord(BaseModel):
    observed: ObservedRecord
    previous: Optional[Record] = None
    updated: Record
    classification: Classification

    @property
    def number(self) -> str:
        return self.observed.number

    @property
    def dispatch_eligible(self) -> bool:
        if self.classification == Classification.NEW:
            # A case seen for the first time only alerts when it carries a notification
            return self.observed.has_notification
        return self.classification in (
            Classification.CHANGED_TO_NOTIFIED,
            Classification.POSSIBLE_REPEAT,
            Classification.PENDING_RETRY,
        )


class ScrapeResult(BaseModel):
    records: List[ObservedRecord] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class DispatchContext(BaseModel):
    classification: Classification
    trigger: str = "scheduled"
    run_started_at: datetime


class DispatchResult(BaseModel):
    number: str
    success: bool
    error: Optional[str] = None
    message_id: Optional[int] = None


class VerificationRun(BaseModel):
    timestamp: datetime
    duration_ms: int = 0
    records_observed: int = 0
    new_notifications: int = 0
    notifications_delivered: int = 0
    errors: List[str] = Field(default_factory=list)
    success: bool = False
    skipped: bool = False
    trigger: str = "scheduled"


class MonitorStatus(BaseModel):
    is_running: bool = False
    last_check: Optional[datetime] = None
    next_check: Optional[datetime] = None
    total_checks: int = 0
    successful_checks: int = 0
    failed_checks: int = 0
    last_error: Optional[str] = None
