"""
Unit tests for SQLiteStateStore.
"""

import sqlite3
import pytest
from unittest.mock import Mock, patch

from core.exceptions import PersistenceError
from models.run import VerificationRun
from repositories.sqlite_store import SQLiteStateStore


class TestSQLiteStateStore:
    """Test suite for SQLiteStateStore"""

    def test_get_missing_record(self, sqlite_store):
        assert sqlite_store.get_record("1/2024") is None

    def test_upsert_and_get(self, sqlite_store, make_record):
        record = make_record("1/2024", has_notification=True, notification_details="Cédula")
        sqlite_store.upsert_record(record)

        stored = sqlite_store.get_record("1/2024")
        assert stored == record

    def test_sent_flag_is_never_reverted(self, sqlite_store, make_record, now):
        sqlite_store.upsert_record(make_record("1/2024", has_notification=True, notification_sent=True))

        sqlite_store.upsert_record(make_record("1/2024", has_notification=False, title="renamed"))

        stored = sqlite_store.get_record("1/2024")
        assert stored.notification_sent is True
        assert stored.notification_sent_at == now
        assert stored.has_notification is False
        assert stored.title == "renamed"

    def test_get_records_returns_only_known(self, sqlite_store, make_record):
        sqlite_store.upsert_record(make_record("1/2024"))
        sqlite_store.upsert_record(make_record("2/2024"))

        found = sqlite_store.get_records(["1/2024", "3/2024", "1/2024"])

        assert set(found) == {"1/2024"}

    def test_get_records_many_keys(self, sqlite_store, make_record):
        for i in range(3):
            sqlite_store.upsert_record(make_record(f"{i}/2024"))

        found = sqlite_store.get_records([f"{i}/2024" for i in range(1200)])

        assert len(found) == 3

    def test_pending_and_statistics(self, sqlite_store, make_record):
        sqlite_store.upsert_record(make_record("1/2024", has_notification=True))
        sqlite_store.upsert_record(make_record("2/2024", has_notification=True, notification_sent=True))
        sqlite_store.upsert_record(make_record("3/2024"))

        pending = sqlite_store.get_pending_unsent()
        stats = sqlite_store.get_statistics()

        assert [r.number for r in pending] == ["1/2024"]
        assert stats.total_records == 3
        assert stats.records_with_notification == 2
        assert stats.pending_unsent == 1
        assert stats.notifications_sent == 1

    def test_statistics_empty(self, sqlite_store):
        stats = sqlite_store.get_statistics()
        assert stats.total_records == 0
        assert stats.pending_unsent == 0

    def test_runs_history(self, sqlite_store, now):
        sqlite_store.append_run(VerificationRun(timestamp=now, success=True, records_observed=3))
        sqlite_store.append_run(
            VerificationRun(timestamp=now, success=False, errors=["boom"], trigger="manual")
        )

        runs = sqlite_store.get_runs(limit=10)

        assert len(runs) == 2
        assert runs[0].trigger == "manual"
        assert runs[0].errors == ["boom"]
        assert runs[1].records_observed == 3

    def test_reset_records_keeps_history(self, sqlite_store, make_record, now):
        sqlite_store.upsert_record(make_record("1/2024"))
        sqlite_store.upsert_record(make_record("2/2024"))
        sqlite_store.append_run(VerificationRun(timestamp=now, success=True))

        removed = sqlite_store.reset_records()

        assert removed == 2
        assert sqlite_store.get_all_records() == []
        assert len(sqlite_store.get_runs()) == 1

    def test_persists_to_file(self, tmp_path, make_record):
        path = str(tmp_path / "db" / "monitor.db")
        store = SQLiteStateStore(path)
        store.upsert_record(make_record("1/2024", has_notification=True, notification_sent=True))
        store.close()

        reopened = SQLiteStateStore(path)
        try:
            assert reopened.get_record("1/2024").notification_sent is True
        finally:
            reopened.close()

    def test_backend_error_is_persistence_error(self, sqlite_store):
        sqlite_store.conn = Mock()
        sqlite_store.conn.execute.side_effect = sqlite3.OperationalError("database is locked")

        with pytest.raises(PersistenceError):
            sqlite_store.get_record("1/2024")


class TestStoreFactory:
    """Test suite for create_state_store"""

    def test_sqlite_is_default(self, test_settings):
        from repositories.store_factory import create_state_store

        store = create_state_store(test_settings)
        try:
            assert isinstance(store, SQLiteStateStore)
        finally:
            store.close()

    def test_supabase_without_credentials_fails(self, test_settings):
        from core.database import Database
        from repositories.store_factory import create_state_store

        Database.reset()
        test_settings.STORE_BACKEND = "supabase"

        with patch("core.database.settings", test_settings):
            with pytest.raises(PersistenceError):
                create_state_store(test_settings)
