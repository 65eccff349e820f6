"""Email/password authentication provider.

The credential is collected by the host (login form) and handed over as-is;
no user interaction happens inside the provider.
"""

from dataclasses import dataclass
from typing import Optional

from identity_bridge.core.auth.options import SignInOptions
from identity_bridge.core.auth.provider import AuthenticationProvider, Credential
from identity_bridge.domain.models.auth import BackendCredential, UserData

__all__ = ["PasswordAuthenticationProvider", "PasswordCredential", "SignInOptions"]


@dataclass(frozen=True)
class PasswordCredential(Credential):
    """Email and password pair"""
    email: str
    password: str

    def to_backend_credential(self) -> BackendCredential:
        return BackendCredential.for_password(self.email, self.password)

    @property
    def user_data(self) -> Optional[UserData]:
        return UserData(email=self.email)

    def __repr__(self) -> str:
        return f"PasswordCredential(email={self.email!r})"


class PasswordAuthenticationProvider(AuthenticationProvider):
    """Email/password authentication.

    The only provider eligible for the sign-up fallback. Linking to the
    signed-in account is opt-in via SignInOptions.TRY_LINK_ON_SIGN_IN.

    Example:
        provider = PasswordAuthenticationProvider(
            "a@x.com",
            "pw",
            SignInOptions.SIGN_UP_ON_USER_NOT_FOUND | SignInOptions.TRY_LINK_ON_SIGN_IN,
        )
    """

    is_password_based = True

    def __init__(
        self,
        email: str,
        password: str,
        options: SignInOptions = SignInOptions.NONE
    ):
        """Initialize password provider.

        Args:
            email: Account email
            password: Account password (plain text)
            options: Sign-in behaviours
        """
        self.email = email
        self.password = password
        self.sign_in_options = options

    async def credential(self) -> PasswordCredential:
        return PasswordCredential(email=self.email, password=self.password)

    def sign_up_credentials(self, credential: Credential) -> Optional[tuple[str, str]]:
        if isinstance(credential, PasswordCredential):
            return (credential.email, credential.password)
        return None
