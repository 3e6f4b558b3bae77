"""
Session package: credential artifact persistence, the Playwright
authenticator and the session validity state machine.
"""
from services.session.credential_store import CredentialStore
from services.session.session_manager import SessionManager

__all__ = [
    "CredentialStore",
    "SessionManager",
]
