import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from core.constants import RECORDS_TABLE, RUNS_TABLE
from core.exceptions import PersistenceError
from core.logger import get_logger
from models.record import Record, StoreStatistics
from models.run import VerificationRun

logger = get_logger(__name__)

# SQLite limits the number of bound parameters per statement
_IN_CHUNK = 500

_RECORD_COLUMNS = (
    "number, title, has_notification, last_checked_at, notification_sent, "
    "notification_sent_at, notification_details"
)


class SQLiteStateStore:
    """
    Local State Store backed by a single SQLite file.
    One row per case number; the run history is append-only.
    """

    def __init__(self, path: str):
        self.path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = sqlite3.connect(path)
            self.conn.row_factory = sqlite3.Row
            self._create_tables()
        except sqlite3.Error as e:
            raise PersistenceError("Could not open SQLite database", {"path": path, "error": str(e)}) from e
        logger.info(f"[STORE] SQLite state store ready at {path}")

    def _create_tables(self) -> None:
        with self.conn:
            self.conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {RECORDS_TABLE} (
                    number TEXT PRIMARY KEY,
                    title TEXT NOT NULL DEFAULT '',
                    has_notification INTEGER NOT NULL DEFAULT 0,
                    last_checked_at TEXT NOT NULL,
                    notification_sent INTEGER NOT NULL DEFAULT 0,
                    notification_sent_at TEXT,
                    notification_details TEXT,
                    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            self.conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {RUNS_TABLE} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    duration_ms INTEGER NOT NULL DEFAULT 0,
                    records_observed INTEGER NOT NULL DEFAULT 0,
                    new_notifications INTEGER NOT NULL DEFAULT 0,
                    notifications_delivered INTEGER NOT NULL DEFAULT 0,
                    errors TEXT NOT NULL DEFAULT '[]',
                    success INTEGER NOT NULL DEFAULT 0,
                    run_trigger TEXT NOT NULL DEFAULT 'scheduled'
                )
                """
            )
            self.conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_records_pending "
                f"ON {RECORDS_TABLE} (has_notification, notification_sent)"
            )

    @contextmanager
    def _guard(self, operation: str, **details):
        """Maps sqlite3 errors to PersistenceError."""
        try:
            yield
        except sqlite3.Error as e:
            logger.error(f"[STORE] {operation} failed: {e}", context=details)
            raise PersistenceError(f"SQLite {operation} failed", {**details, "error": str(e)}) from e

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Record:
        return Record(
            number=row["number"],
            title=row["title"],
            has_notification=bool(row["has_notification"]),
            last_checked_at=row["last_checked_at"],
            notification_sent=bool(row["notification_sent"]),
            notification_sent_at=row["notification_sent_at"],
            notification_details=row["notification_details"],
        )

    def get_record(self, number: str) -> Optional[Record]:
        with self._guard("get_record", number=number):
            row = self.conn.execute(
                f"SELECT {_RECORD_COLUMNS} FROM {RECORDS_TABLE} WHERE number = ?", (number,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def get_records(self, numbers: Iterable[str]) -> Dict[str, Record]:
        keys = list(dict.fromkeys(numbers))
        found: Dict[str, Record] = {}
        with self._guard("get_records", count=len(keys)):
            for i in range(0, len(keys), _IN_CHUNK):
                chunk = keys[i : i + _IN_CHUNK]
                placeholders = ", ".join("?" for _ in chunk)
                rows = self.conn.execute(
                    f"SELECT {_RECORD_COLUMNS} FROM {RECORDS_TABLE} WHERE number IN ({placeholders})",
                    chunk,
                ).fetchall()
                for row in rows:
                    found[row["number"]] = self._row_to_record(row)
        return found

    def upsert_record(self, record: Record) -> None:
        """
        Inserts or updates one record. A stored notification_sent=1 is never
        overwritten with 0, whatever the caller passes.
        """
        with self._guard("upsert_record", number=record.number), self.conn:
            self.conn.execute(
                f"""
                INSERT INTO {RECORDS_TABLE} ({_RECORD_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(number) DO UPDATE SET
                    title = excluded.title,
                    has_notification = excluded.has_notification,
                    last_checked_at = excluded.last_checked_at,
                    notification_sent = MAX({RECORDS_TABLE}.notification_sent, excluded.notification_sent),
                    notification_sent_at = CASE
                        WHEN excluded.notification_sent = 1 THEN excluded.notification_sent_at
                        ELSE {RECORDS_TABLE}.notification_sent_at
                    END,
                    notification_details = excluded.notification_details,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    record.number,
                    record.title,
                    int(record.has_notification),
                    record.last_checked_at.isoformat(),
                    int(record.notification_sent),
                    record.notification_sent_at.isoformat() if record.notification_sent_at else None,
                    record.notification_details,
                ),
            )
        logger.debug(f"[STORE] Record saved: {record.number}")

    def append_run(self, run: VerificationRun) -> None:
        with self._guard("append_run"), self.conn:
            self.conn.execute(
                f"""
                INSERT INTO {RUNS_TABLE} (
                    timestamp, duration_ms, records_observed, new_notifications,
                    notifications_delivered, errors, success, run_trigger
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.timestamp.isoformat(),
                    run.duration_ms,
                    run.records_observed,
                    run.new_notifications,
                    run.notifications_delivered,
                    json.dumps(run.errors, ensure_ascii=False),
                    int(run.success),
                    run.trigger,
                ),
            )

    def get_pending_unsent(self) -> List[Record]:
        with self._guard("get_pending_unsent"):
            rows = self.conn.execute(
                f"""
                SELECT {_RECORD_COLUMNS} FROM {RECORDS_TABLE}
                WHERE has_notification = 1 AND notification_sent = 0
                ORDER BY last_checked_at DESC
                """
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_all_records(self) -> List[Record]:
        with self._guard("get_all_records"):
            rows = self.conn.execute(
                f"SELECT {_RECORD_COLUMNS} FROM {RECORDS_TABLE} ORDER BY last_checked_at DESC"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_runs(self, limit: int = 20) -> List[VerificationRun]:
        with self._guard("get_runs"):
            rows = self.conn.execute(
                f"SELECT * FROM {RUNS_TABLE} ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [
            VerificationRun(
                timestamp=row["timestamp"],
                duration_ms=row["duration_ms"],
                records_observed=row["records_observed"],
                new_notifications=row["new_notifications"],
                notifications_delivered=row["notifications_delivered"],
                errors=json.loads(row["errors"] or "[]"),
                success=bool(row["success"]),
                trigger=row["run_trigger"],
            )
            for row in rows
        ]

    def get_statistics(self) -> StoreStatistics:
        with self._guard("get_statistics"):
            row = self.conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(has_notification), 0) AS with_notification,
                    COALESCE(SUM(CASE WHEN has_notification = 1 AND notification_sent = 0 THEN 1 ELSE 0 END), 0) AS pending,
                    COALESCE(SUM(notification_sent), 0) AS sent
                FROM {RECORDS_TABLE}
                """
            ).fetchone()
        return StoreStatistics(
            total_records=row["total"],
            records_with_notification=row["with_notification"],
            pending_unsent=row["pending"],
            notifications_sent=row["sent"],
        )

    def reset_records(self) -> int:
        """Administrative reset: deletes every record. Run history is kept."""
        with self._guard("reset_records"), self.conn:
            cursor = self.conn.execute(f"DELETE FROM {RECORDS_TABLE}")
        logger.warning(f"[STORE] Administrative reset removed {cursor.rowcount} records")
        return cursor.rowcount

    def close(self) -> None:
        try:
            self.conn.close()
            logger.info("[STORE] SQLite connection closed")
        except sqlite3.Error as e:
            logger.warning(f"[STORE] Error closing SQLite connection: {e}")
