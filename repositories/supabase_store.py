from typing import Dict, Iterable, List, Optional
from supabase import Client
from core.constants import RECORDS_TABLE, RUNS_TABLE
from core.database import Database
from core.exceptions import PersistenceError
from core.logger import get_logger
from models.record import Record, StoreStatistics
from models.run import VerificationRun

logger = get_logger(__name__)


class SupabaseStateStore:
    """
    Hosted State Store. Same contract as SQLiteStateStore; the monotonic
    sent flag is enforced by reading the stored row before an update that
    would clear it.
    """

    def __init__(self, client: Optional[Client] = None):
        self.db: Client = client or Database.get_client()

    @staticmethod
    def _to_row(record: Record) -> Dict:
        data = record.model_dump()
        data["last_checked_at"] = record.last_checked_at.isoformat()
        if record.notification_sent_at:
            data["notification_sent_at"] = record.notification_sent_at.isoformat()
        return data

    def get_record(self, number: str) -> Optional[Record]:
        try:
            response = (
                self.db.table(RECORDS_TABLE)
                .select("*")
                .eq("number", number)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"[STORE] Failed to fetch record {number}: {e}")
            raise PersistenceError("Supabase get_record failed", {"number": number, "error": str(e)}) from e

        if not response.data:
            return None
        return Record(**response.data[0])

    def get_records(self, numbers: Iterable[str]) -> Dict[str, Record]:
        keys = list(dict.fromkeys(numbers))
        if not keys:
            return {}
        try:
            response = (
                self.db.table(RECORDS_TABLE)
                .select("*")
                .in_("number", keys)
                .execute()
            )
        except Exception as e:
            logger.error(f"[STORE] Failed to fetch {len(keys)} records: {e}")
            raise PersistenceError("Supabase get_records failed", {"error": str(e)}) from e

        return {row["number"]: Record(**row) for row in response.data or []}

    def upsert_record(self, record: Record) -> None:
        if not record.notification_sent:
            existing = self.get_record(record.number)
            if existing and existing.notification_sent:
                record = record.model_copy(
                    update={
                        "notification_sent": True,
                        "notification_sent_at": existing.notification_sent_at,
                    }
                )

        try:
            self.db.table(RECORDS_TABLE).upsert(
                self._to_row(record), on_conflict="number"
            ).execute()
        except Exception as e:
            logger.error(f"[STORE] Failed to upsert record {record.number}: {e}")
            raise PersistenceError("Supabase upsert_record failed", {"number": record.number, "error": str(e)}) from e

    def append_run(self, run: VerificationRun) -> None:
        data = run.model_dump(exclude={"skipped"})
        data["timestamp"] = run.timestamp.isoformat()
        try:
            self.db.table(RUNS_TABLE).insert(data).execute()
        except Exception as e:
            logger.error(f"[STORE] Failed to append verification run: {e}")
            raise PersistenceError("Supabase append_run failed", {"error": str(e)}) from e

    def get_pending_unsent(self) -> List[Record]:
        try:
            response = (
                self.db.table(RECORDS_TABLE)
                .select("*")
                .eq("has_notification", True)
                .eq("notification_sent", False)
                .order("last_checked_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise PersistenceError("Supabase get_pending_unsent failed", {"error": str(e)}) from e
        return [Record(**row) for row in response.data or []]

    def get_all_records(self) -> List[Record]:
        try:
            response = (
                self.db.table(RECORDS_TABLE)
                .select("*")
                .order("last_checked_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise PersistenceError("Supabase get_all_records failed", {"error": str(e)}) from e
        return [Record(**row) for row in response.data or []]

    def get_runs(self, limit: int = 20) -> List[VerificationRun]:
        try:
            response = (
                self.db.table(RUNS_TABLE)
                .select("*")
                .order("timestamp", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise PersistenceError("Supabase get_runs failed", {"error": str(e)}) from e
        return [VerificationRun(**row) for row in response.data or []]

    def get_statistics(self) -> StoreStatistics:
        try:
            response = (
                self.db.table(RECORDS_TABLE)
                .select("has_notification, notification_sent")
                .execute()
            )
        except Exception as e:
            raise PersistenceError("Supabase get_statistics failed", {"error": str(e)}) from e

        rows = response.data or []
        return StoreStatistics(
            total_records=len(rows),
            records_with_notification=sum(1 for r in rows if r["has_notification"]),
            pending_unsent=sum(1 for r in rows if r["has_notification"] and not r["notification_sent"]),
            notifications_sent=sum(1 for r in rows if r["notification_sent"]),
        )

    def reset_records(self) -> int:
        try:
            # PostgREST refuses an unfiltered delete
            response = self.db.table(RECORDS_TABLE).delete().neq("number", "").execute()
        except Exception as e:
            raise PersistenceError("Supabase reset_records failed", {"error": str(e)}) from e
        removed = len(response.data or [])
        logger.warning(f"[STORE] Administrative reset removed {removed} records")
        return removed

    def close(self) -> None:
        Database.reset()
