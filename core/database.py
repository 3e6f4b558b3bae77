from supabase import create_client, Client
from .config import settings
from .constants import RECORDS_TABLE
from .exceptions import PersistenceError
from .logger import get_logger
import time

logger = get_logger(__name__)


class Database:
    _instance: Client = None

    @classmethod
    def get_client(cls, max_retries: int = 3) -> Client:
        """
        Get Supabase client with retry logic.

        Args:
            max_retries: Maximum number of connection attempts

        Returns:
            Supabase Client instance

        Raises:
            PersistenceError: If connection fails after all retries
        """
        if cls._instance is None:
            if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
                raise PersistenceError("Supabase backend selected but SUPABASE_URL/SUPABASE_KEY are not set")

            for attempt in range(1, max_retries + 1):
                try:
                    cls._instance = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
                    logger.info(f"[DB] Connected to Supabase (attempt {attempt}/{max_retries})")

                    try:
                        cls._instance.table(RECORDS_TABLE).select("number").limit(1).execute()
                        logger.info("[DB] Database health check passed")
                    except Exception as e:
                        logger.warning(f"[DB] Database health check warning: {e}")

                    break
                except Exception as e:
                    logger.error(f"[DB] Supabase connection attempt {attempt}/{max_retries} failed: {e}")
                    if attempt < max_retries:
                        wait_time = 2 ** attempt  # Exponential backoff: 2, 4 seconds
                        logger.info(f"[DB] Retrying in {wait_time} seconds...")
                        time.sleep(wait_time)
                    else:
                        logger.critical("[DB] Failed to connect to Supabase after all retries")
                        raise PersistenceError("Could not connect to Supabase", {"error": str(e)})

        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drops the cached client (used on shutdown and in tests)."""
        cls._instance = None
