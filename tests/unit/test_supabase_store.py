"""
Unit tests for SupabaseStateStore (mocked client).
"""

import pytest
from unittest.mock import Mock

from core.exceptions import PersistenceError
from models.run import VerificationRun
from repositories.supabase_store import SupabaseStateStore


def row(number, **overrides):
    data = {
        "number": number,
        "title": f"Caso {number}",
        "has_notification": False,
        "last_checked_at": "2024-12-01T15:30:00+00:00",
        "notification_sent": False,
        "notification_sent_at": None,
        "notification_details": None,
        "created_at": "2024-11-01T00:00:00+00:00",
    }
    data.update(overrides)
    return data


class TestSupabaseStateStore:
    """Test suite for SupabaseStateStore"""

    @pytest.fixture
    def table(self, mock_supabase_client):
        return mock_supabase_client.table.return_value

    @pytest.fixture
    def store(self, mock_supabase_client):
        return SupabaseStateStore(client=mock_supabase_client)

    def test_get_record(self, store, table):
        table.execute.return_value = Mock(data=[row("1/2024", has_notification=True)])

        record = store.get_record("1/2024")

        assert record.number == "1/2024"
        assert record.has_notification is True
        table.eq.assert_called_with("number", "1/2024")

    def test_get_record_missing(self, store):
        assert store.get_record("1/2024") is None

    def test_get_records_uses_in_filter(self, store, table):
        table.execute.return_value = Mock(data=[row("1/2024"), row("2/2024")])

        found = store.get_records(["1/2024", "2/2024", "1/2024"])

        assert set(found) == {"1/2024", "2/2024"}
        table.in_.assert_called_once_with("number", ["1/2024", "2/2024"])

    def test_get_records_empty_skips_query(self, store, mock_supabase_client):
        assert store.get_records([]) == {}
        mock_supabase_client.table.assert_not_called()

    def test_upsert_keeps_stored_sent_flag(self, store, table, make_record):
        table.execute.return_value = Mock(
            data=[row("1/2024", has_notification=True, notification_sent=True,
                      notification_sent_at="2024-11-30T10:00:00+00:00")]
        )

        store.upsert_record(make_record("1/2024", has_notification=True))

        sent_row = table.upsert.call_args[0][0]
        assert sent_row["notification_sent"] is True
        assert sent_row["notification_sent_at"] == "2024-11-30T10:00:00+00:00"
        assert table.upsert.call_args.kwargs["on_conflict"] == "number"

    def test_upsert_sent_record_skips_lookup(self, store, table, make_record):
        store.upsert_record(make_record("1/2024", has_notification=True, notification_sent=True))

        table.select.assert_not_called()
        assert table.upsert.call_args[0][0]["notification_sent"] is True

    def test_append_run(self, store, table, now):
        store.append_run(VerificationRun(timestamp=now, success=True, trigger="manual"))

        data = table.insert.call_args[0][0]
        assert data["trigger"] == "manual"
        assert data["timestamp"] == now.isoformat()
        assert "skipped" not in data

    def test_statistics(self, store, table):
        table.execute.return_value = Mock(
            data=[
                {"has_notification": True, "notification_sent": True},
                {"has_notification": True, "notification_sent": False},
                {"has_notification": False, "notification_sent": False},
            ]
        )

        stats = store.get_statistics()

        assert stats.total_records == 3
        assert stats.records_with_notification == 2
        assert stats.pending_unsent == 1
        assert stats.notifications_sent == 1

    def test_reset_records(self, store, table):
        table.execute.return_value = Mock(data=[row("1/2024"), row("2/2024")])

        assert store.reset_records() == 2
        table.neq.assert_called_once_with("number", "")

    def test_backend_error_is_persistence_error(self, store, table):
        table.execute.side_effect = RuntimeError("connection refused")

        with pytest.raises(PersistenceError):
            store.get_pending_unsent()
