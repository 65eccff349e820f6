"""Authenticated session handle.

Holds the currently signed-in user and their tokens in memory. One instance
is owned by the host application and injected into both the identity backend
(which mutates it on sign-in/out) and the AuthenticationService (which reads it).
Persisting the session across processes is the host's concern.
"""

import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from identity_bridge.domain.models.auth import BackendUser

logger = logging.getLogger(__name__)

# Treat tokens as expired slightly early to avoid racing the backend clock
EXPIRY_SKEW = timedelta(seconds=30)


class PushTokenType(Enum):
    """Push notification token environment"""
    SANDBOX = "sandbox"
    PRODUCTION = "production"
    UNKNOWN = "unknown"


class AuthSession:
    """In-memory authenticated session"""

    def __init__(self):
        self.user: Optional[BackendUser] = None
        self.id_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.expires_at: Optional[datetime] = None
        self.push_token: Optional[str] = None
        self.push_token_type: Optional[PushTokenType] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.id_token is not None

    @property
    def is_expired(self) -> bool:
        """Check if the ID token is expired (or about to expire)"""
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self.expires_at - EXPIRY_SKEW

    def update(
        self,
        user: BackendUser,
        id_token: str,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
    ) -> None:
        """Replace the signed-in user and tokens.

        Args:
            user: Signed-in user
            id_token: Backend ID token
            refresh_token: Refresh token (kept if not provided)
            expires_in: ID token lifetime in seconds
        """
        self.user = user
        self.update_tokens(id_token, refresh_token, expires_in)
        logger.debug(f"Session updated for user {user.uid}")

    def update_tokens(
        self,
        id_token: str,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
    ) -> None:
        self.id_token = id_token
        if refresh_token:
            self.refresh_token = refresh_token
        if expires_in is not None:
            self.expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        else:
            self.expires_at = None

    def clear(self) -> None:
        """Forget the signed-in user. The push token survives sign-out."""
        if self.user:
            logger.debug(f"Session cleared for user {self.user.uid}")
        self.user = None
        self.id_token = None
        self.refresh_token = None
        self.expires_at = None
