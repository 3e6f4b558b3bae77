from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    VALID = "valid"


class Credential(BaseModel):
    """Reusable proof of authentication: the browser cookies after login."""

    cookies: List[Dict[str, Any]] = Field(default_factory=list)
    obtained_at: datetime


class SessionHandle(BaseModel):
    state: SessionState = SessionState.UNAUTHENTICATED
    credential: Optional[Credential] = None
