from core import constants
from core.config import Settings
from core.interfaces import IStateStore
from core.logger import get_logger

logger = get_logger(__name__)


def create_state_store(config: Settings) -> IStateStore:
    """Builds the State Store selected by STORE_BACKEND."""
    if config.STORE_BACKEND == constants.STORE_BACKEND_SUPABASE:
        # Imported lazily so the SQLite backend works without Supabase credentials
        from repositories.supabase_store import SupabaseStateStore

        logger.info("[STORE] Using Supabase backend")
        return SupabaseStateStore()

    from repositories.sqlite_store import SQLiteStateStore

    logger.info("[STORE] Using SQLite backend")
    return SQLiteStateStore(config.DB_PATH)
