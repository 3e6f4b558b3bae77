"""
Session validity state machine.

    UNAUTHENTICATED -> AUTHENTICATING -> VALID -> (probe fails) -> UNAUTHENTICATED

ensure_valid_session() is the only place the handle changes. The probe and
the login are the only suspension points, each bounded by a timeout.
"""
import asyncio
from typing import Optional

from core.config import Settings, settings
from core.exceptions import AuthenticationError, SessionTimeoutError
from core.interfaces import IAuthenticator
from core.logger import get_logger
from core.performance import get_performance_monitor
from models.session import Credential, SessionHandle, SessionState
from services.session.credential_store import CredentialStore

logger = get_logger(__name__)


class SessionManager:
    def __init__(
        self,
        authenticator: IAuthenticator,
        credential_store: CredentialStore,
        config: Optional[Settings] = None,
    ):
        self.authenticator = authenticator
        self.credential_store = credential_store
        self.config = config or settings

        self.max_login_attempts = self.config.MAX_LOGIN_ATTEMPTS
        self.backoff_seconds = self.config.LOGIN_BACKOFF_SECONDS
        self.timeout = self.config.SESSION_TIMEOUT_SECONDS

        self._handle = SessionHandle()

    @property
    def state(self) -> SessionState:
        return self._handle.state

    def _transition(self, new_state: SessionState) -> None:
        if self._handle.state != new_state:
            logger.debug(f"[SESSION] {self._handle.state.value} -> {new_state.value}")
        self._handle.state = new_state

    async def ensure_valid_session(self) -> Credential:
        """
        Returns a credential that passed the probe, logging in again if needed.

        Raises:
            AuthenticationError: every login attempt failed
            SessionTimeoutError: the last login attempt timed out
        """
        candidate = self._handle.credential or self.credential_store.load()

        if candidate is not None:
            if await self._probe(candidate):
                self._handle.credential = candidate
                self._transition(SessionState.VALID)
                logger.info("[SESSION] Reusing existing session")
                return candidate
            logger.info("[SESSION] Stored session rejected, re-authenticating")

        self._handle.credential = None
        self._transition(SessionState.UNAUTHENTICATED)
        self._transition(SessionState.AUTHENTICATING)
        credential = await self._login_with_retries()

        self.credential_store.save(credential)
        self._handle.credential = credential
        self._transition(SessionState.VALID)
        return credential

    async def _probe(self, credential: Credential) -> bool:
        monitor = get_performance_monitor()
        try:
            with monitor.measure("session_probe"):
                return await asyncio.wait_for(
                    self.authenticator.probe(credential), timeout=self.timeout
                )
        except asyncio.TimeoutError:
            error = SessionTimeoutError("Session probe timed out", {"timeout_s": self.timeout})
            logger.warning(f"[SESSION] {error}")
            return False
        except Exception as e:
            logger.warning(f"[SESSION] Session probe failed: {e}")
            return False

    async def _login_with_retries(self) -> Credential:
        monitor = get_performance_monitor()
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_login_attempts + 1):
            try:
                logger.info(f"[SESSION] Login attempt {attempt}/{self.max_login_attempts}")
                with monitor.measure("login", {"attempt": attempt}):
                    credential = await asyncio.wait_for(
                        self.authenticator.login(), timeout=self.timeout
                    )
                logger.info(f"[SESSION] Authenticated on attempt {attempt}")
                return credential
            except asyncio.TimeoutError:
                last_error = SessionTimeoutError(
                    "Login timed out", {"attempt": attempt, "timeout_s": self.timeout}
                )
                logger.warning(f"[SESSION] {last_error}")
            except Exception as e:
                last_error = e
                logger.warning(f"[SESSION] Login attempt {attempt}/{self.max_login_attempts} failed: {e}")

            if attempt < self.max_login_attempts:
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.info(f"[SESSION] Retrying login in {wait_time:.1f}s...")
                await asyncio.sleep(wait_time)

        self._handle.credential = None
        self._transition(SessionState.UNAUTHENTICATED)

        details = {"attempts": self.max_login_attempts, "last_error": str(last_error)}
        if isinstance(last_error, SessionTimeoutError):
            raise SessionTimeoutError("Authentication timed out after all attempts", details) from last_error
        raise AuthenticationError("Authentication failed after all attempts", details) from last_error

    def invalidate(self) -> None:
        """Forgets the current credential after the portal rejected it mid-cycle."""
        if self._handle.state == SessionState.VALID:
            logger.warning("[SESSION] Session invalidated")
        self._handle.credential = None
        self._transition(SessionState.UNAUTHENTICATED)
        self.credential_store.clear()

    async def close(self) -> None:
        try:
            await self.authenticator.close()
        finally:
            self._handle.credential = None
            self._transition(SessionState.UNAUTHENTICATED)
