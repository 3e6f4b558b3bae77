from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime


class ObservedRecord(BaseModel):
    """One row of a scrape snapshot. Never persisted directly."""

    number: str = Field(..., description="Natural key, e.g. '100/2024'")
    title: str = ""
    has_notification: bool = False
    notification_details: Optional[str] = None

    @field_validator("number")
    @classmethod
    def validate_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("number must not be empty")
        return v


class Record(BaseModel):
    number: str
    title: str = ""
    has_notification: bool = False
    last_checked_at: datetime
    notification_sent: bool = False
    notification_sent_at: Optional[datetime] = None
    notification_details: Optional[str] = None

    @model_validator(mode="after")
    def check_sent_timestamp(self):
        # notification_sent_at is set iff notification_sent
        if self.notification_sent and self.notification_sent_at is None:
            raise ValueError(f"Record {self.number}: notification_sent without notification_sent_at")
        if not self.notification_sent and self.notification_sent_at is not None:
            raise ValueError(f"Record {self.number}: notification_sent_at without notification_sent")
        return self

    def mark_sent(self, now: datetime) -> "Record":
        """Returns a copy carrying the durable 'sent' mark."""
        return self.model_copy(
            update={"notification_sent": True, "notification_sent_at": now}
        )


class StoreStatistics(BaseModel):
    total_records: int = 0
    records_with_notification: int = 0
    pending_unsent: int = 0
    notifications_sent: int = 0
