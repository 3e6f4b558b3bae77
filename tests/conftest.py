import pytest
from typing import Dict, Any
from unittest.mock import Mock, AsyncMock
from datetime import datetime, timezone

from core.config import Settings
from models.record import ObservedRecord, Record
from models.run import ScrapeResult
from models.session import Credential

# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        PORTAL_USERNAME="user",
        PORTAL_PASSWORD="secret-password",
        TELEGRAM_BOT_TOKEN="123456:ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghi",
        TELEGRAM_CHAT_ID="-1001",
        MAX_LOGIN_ATTEMPTS=3,
        LOGIN_BACKOFF_SECONDS=0,
        SESSION_TIMEOUT_SECONDS=1,
        DISPATCH_TIMEOUT_SECONDS=1,
        COOKIES_PATH=str(tmp_path / "cookies" / "session.json"),
        DB_PATH=":memory:",
        SEND_STATUS_SUMMARY=False,
    )


# =============================================================================
# Mock Fixtures - Collaborators
# =============================================================================


@pytest.fixture
def credential() -> Credential:
    return Credential(
        cookies=[{"name": "JSESSIONID", "value": "abc", "domain": "portal.test", "path": "/"}],
        obtained_at=datetime(2024, 12, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def mock_session_manager(credential):
    manager = Mock()
    manager.ensure_valid_session = AsyncMock(return_value=credential)
    manager.invalidate = Mock()
    manager.close = AsyncMock()
    return manager


@pytest.fixture
def mock_scraper():
    scraper = Mock()
    scraper.scrape = AsyncMock(return_value=ScrapeResult())
    return scraper


@pytest.fixture
def mock_notifier():
    notifier = Mock(spec=["send", "send_status", "close"])
    notifier.send = AsyncMock(return_value=42)
    notifier.send_status = AsyncMock(return_value=43)
    notifier.close = AsyncMock()
    return notifier


@pytest.fixture
def mock_error_notifier():
    error_notifier = Mock()
    error_notifier.send_critical_error = AsyncMock(return_value=True)
    return error_notifier


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for database operations."""
    client = Mock()

    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.update.return_value = table_mock
    table_mock.upsert.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.neq.return_value = table_mock
    table_mock.in_.return_value = table_mock
    table_mock.order.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.execute.return_value = Mock(data=[])

    client.table.return_value = table_mock
    return client


@pytest.fixture
def sqlite_store():
    from repositories.sqlite_store import SQLiteStateStore

    store = SQLiteStateStore(":memory:")
    yield store
    store.close()


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 12, 1, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def make_record(now):
    """Factory for stored records."""

    def _make(number: str = "100/2024", **overrides: Any) -> Record:
        data: Dict[str, Any] = {
            "number": number,
            "title": f"Caso {number}",
            "has_notification": False,
            "last_checked_at": now,
        }
        data.update(overrides)
        if data.get("notification_sent") and "notification_sent_at" not in overrides:
            data["notification_sent_at"] = now
        return Record(**data)

    return _make


@pytest.fixture
def make_observed():
    """Factory for scraped records."""

    def _make(number: str = "100/2024", has_notification: bool = False, **overrides: Any) -> ObservedRecord:
        data: Dict[str, Any] = {
            "number": number,
            "title": f"Caso {number}",
            "has_notification": has_notification,
        }
        data.update(overrides)
        return ObservedRecord(**data)

    return _make


@pytest.fixture
def sample_listing_html() -> str:
    """Case listing as rendered by the portal."""
    return """
    <html><body>
    <table>
        <thead><tr><th>Expediente</th><th>Carátula</th><th>Detalle</th></tr></thead>
        <tbody>
            <tr>
                <td>100/2024</td>
                <td>PEREZ JUAN c/ GOMEZ s/ DAÑOS</td>
                <td>Cédula electrónica 01/12/2024</td>
                <td><span class="badge">1</span></td>
            </tr>
            <tr>
                <td>200/2023</td>
                <td>LOPEZ s/ SUCESIÓN</td>
                <td></td>
                <td></td>
            </tr>
            <tr>
                <td colspan="4">Página 1 de 1</td>
            </tr>
        </tbody>
    </table>
    </body></html>
    """

