import json
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from core.logger import get_logger
from models.session import Credential

logger = get_logger(__name__)


class CredentialStore:
    """
    Persists the credential artifact (browser cookies) as a JSON file so a
    restart can reuse the previous login.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[Credential]:
        """Returns the stored credential, or None if absent or unreadable."""
        if not self.exists():
            logger.info("[AUTH] No stored session cookies found")
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            credential = Credential(**data)
        except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.warning(f"[AUTH] Ignoring unreadable credential artifact {self.path}: {e}")
            return None

        if not credential.cookies:
            return None

        logger.info(f"[AUTH] Loaded {len(credential.cookies)} stored cookies")
        return credential

    def save(self, credential: Credential) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(credential.model_dump_json(indent=2))
            os.replace(tmp_path, self.path)
        except OSError as e:
            # Non-fatal, the next start logs in again
            logger.warning(f"[AUTH] Could not persist session cookies: {e}")
            return
        logger.info(f"[AUTH] Saved {len(credential.cookies)} session cookies")

    def clear(self) -> None:
        try:
            self.path.unlink()
            logger.info("[AUTH] Stored session cookies removed")
        except FileNotFoundError:
            pass
