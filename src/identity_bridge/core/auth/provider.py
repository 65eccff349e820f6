"""Abstract authentication provider interface.

This module defines the contract that all authentication providers must implement.
The AuthenticationService only needs runtime dispatch over "can produce a credential"
and "can convert that credential to a backend handle", so every provider is
interchangeable from its point of view.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel

from identity_bridge.core.auth.options import SignInOptions
from identity_bridge.domain.models.auth import BackendCredential, UserData


class AuthorizationRequest(BaseModel):
    """Interactive authorization request handed to a presentation context.

    Attributes:
        url: Authorization URL to present to the user
        state: CSRF protection state expected back on the redirect
        redirect_uri: URL the provider redirects to after consent
    """
    url: str
    state: str
    redirect_uri: str


class AuthorizationResponse(BaseModel):
    """Parameters received on the authorization redirect.

    Attributes:
        code: Authorization code (on success)
        state: State echoed back by the provider
        error: OAuth error code (e.g. 'access_denied')
        error_description: Human-readable error detail
        granted_scopes: Scopes the user granted, when the provider reports them
        denied_scopes: Scopes the user declined, when the provider reports them
        user: Raw JSON user payload (Sign in with Apple form_post)
    """
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    granted_scopes: Optional[str] = None
    denied_scopes: Optional[str] = None
    user: Optional[str] = None


class PresentationContext(ABC):
    """Surface that can show a provider's sign-in UI to the user.

    Providers that need user interaction (browser consent screens) present
    their authorization request through a context supplied by the host.
    """

    @property
    @abstractmethod
    def redirect_uri(self) -> str:
        """Redirect URI the context is able to receive callbacks on."""
        pass

    @abstractmethod
    async def present(self, request: AuthorizationRequest) -> AuthorizationResponse:
        """Show the authorization request and wait for the redirect.

        Args:
            request: Authorization request to present

        Returns:
            Parameters received on the redirect
        """
        pass


class PresentationSlot:
    """Optional provider capability: a settable-once presentation context.

    Providers that need a presentation context expose one of these as their
    ``presentation`` attribute; providers that don't leave it as None.
    """

    def __init__(self, context: Optional[PresentationContext] = None):
        self._context = context

    @property
    def context(self) -> Optional[PresentationContext]:
        return self._context

    @property
    def is_set(self) -> bool:
        return self._context is not None

    def set(self, context: PresentationContext) -> None:
        """Set the presentation context.

        Raises:
            RuntimeError: If a context was already set
        """
        if self._context is not None:
            raise RuntimeError("Presentation context already set")
        self._context = context


class Credential(ABC):
    """Provider-specific proof of identity, prior to backend conversion.

    Credentials are produced by a provider, converted, and discarded within a
    single sign-in attempt. They are never persisted.
    """

    @abstractmethod
    def to_backend_credential(self) -> BackendCredential:
        """Convert to a backend credential handle.

        Pure and total: must not fail and must return equal handles for
        equal credentials.
        """
        pass

    @property
    def user_data(self) -> Optional[UserData]:
        """Profile data the provider collected, if any."""
        return None


class AuthenticationProvider(ABC):
    """Abstract interface for authentication providers.

    Example:
        service = AuthenticationService(backend, session)

        # Email/password, creating the account when it does not exist yet
        await service.sign_in(PasswordAuthenticationProvider(
            "a@x.com", "pw", SignInOptions.SIGN_UP_ON_USER_NOT_FOUND
        ))

        # Google, presented through the host's default presentation context
        await service.sign_in(GoogleAuthenticationProvider(client_id="xxx"))
    """

    #: Password-based providers get the sign-up fallback and opt in to linking
    is_password_based: bool = False

    #: Presentation capability; None when the provider needs no UI context
    presentation: Optional[PresentationSlot] = None

    #: Only meaningful for password-based providers
    sign_in_options: SignInOptions = SignInOptions.NONE

    @property
    def name(self) -> str:
        """Human-readable provider name for logs and errors."""
        return self.__class__.__name__

    @abstractmethod
    async def credential(self) -> Credential:
        """Retrieve the authentication credential.

        May involve user interaction; the provider owns that interaction
        entirely, including any timeout.

        Returns:
            Provider-specific credential

        Raises:
            ProviderError: If the user cancels, declines, or no token is issued
        """
        pass

    def sign_up_credentials(self, credential: Credential) -> Optional[tuple[str, str]]:
        """Email and secret for account creation, for providers that support it."""
        return None

    async def sign_in_succeeded(self) -> None:
        """Hook called once the backend sign-in has completed."""
        pass

    async def sign_in_failed(self, error: Exception) -> None:
        """Hook called once the backend sign-in attempt has definitively failed."""
        pass
