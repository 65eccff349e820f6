"""Identity backend facade.

Thin call surface over the remote identity backend. The AuthenticationService
depends only on this interface; account storage, token issuance and mail
delivery all live behind it.
"""

from abc import ABC, abstractmethod
from typing import Optional

from identity_bridge.domain.models.auth import BackendCredential, BackendSignInResult
from identity_bridge.infrastructure.backend.session import AuthSession, PushTokenType


class IdentityBackend(ABC):
    """Abstract interface for identity backends.

    All operations raise BackendError on failure. Successful sign-in, link
    and sign-up calls update the injected session.
    """

    @property
    @abstractmethod
    def session(self) -> AuthSession:
        """Session handle this backend signs users into."""
        pass

    @abstractmethod
    async def sign_in_anonymously(self) -> BackendSignInResult:
        """Create and sign in an anonymous user."""
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> BackendSignInResult:
        """Create an email/password account and sign it in.

        Raises:
            BackendError: EMAIL_ALREADY_IN_USE, WEAK_PASSWORD, ...
        """
        pass

    @abstractmethod
    async def sign_in(self, credential: BackendCredential, link: bool) -> BackendSignInResult:
        """Sign in with a credential, or link it to the signed-in account.

        When ``link`` is True and a user is signed in, the credential is
        linked to that user. Otherwise a plain sign-in is performed.

        Args:
            credential: Backend credential handle
            link: Prefer linking to the signed-in account

        Raises:
            BackendError: CREDENTIAL_ALREADY_IN_USE (possibly carrying an
                updated credential), USER_NOT_FOUND, ...
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """Sign out the current user."""
        pass

    @abstractmethod
    async def token(self, force_refresh: bool = False) -> Optional[str]:
        """ID token of the current user, or None when signed out."""
        pass

    @abstractmethod
    async def request_password_reset(self, email: str) -> None:
        """Send a password reset email."""
        pass

    @abstractmethod
    async def verify_password_reset_code(self, code: str) -> str:
        """Check a password reset code and return the account email."""
        pass

    @abstractmethod
    async def change_password(self, code: str, new_password: str) -> None:
        """Complete a password reset with a new password."""
        pass

    @abstractmethod
    async def apply_action_code_and_reload(self, code: str) -> None:
        """Apply an out-of-band action code (e.g. email verification) and reload the user."""
        pass

    @abstractmethod
    async def set_push_token(self, token: bytes, token_type: PushTokenType) -> None:
        """Register the platform push token used for phone verification."""
        pass
