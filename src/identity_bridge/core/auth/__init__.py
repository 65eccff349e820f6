"""Authentication provider abstraction layer.

Supports multiple identity sources via pluggable providers:
- password: Email/password, with sign-up fallback and opt-in linking
- google / apple / facebook: OAuth 2.0 social sign-in
"""

from .errors import (
    AuthenticationCancelled,
    AuthorizationFailed,
    BackendError,
    BackendErrorCode,
    ClientConfigurationMissing,
    IdentityBridgeError,
    MissingToken,
    NotLoggedInError,
    PermissionDeclined,
    PreconditionError,
    PresentationContextMissing,
    ProviderError,
    SignInOutcomeUnknown,
)
from .options import SignInOptions
from .provider import (
    AuthenticationProvider,
    AuthorizationRequest,
    AuthorizationResponse,
    Credential,
    PresentationContext,
    PresentationSlot,
)
from .password import PasswordAuthenticationProvider, PasswordCredential
from .oauth import (
    AppleAuthenticationProvider,
    AppleCredential,
    FacebookAuthenticationProvider,
    FacebookCredential,
    FacebookToken,
    GoogleAuthenticationProvider,
    GoogleCredential,
)
from .factory import get_authentication_provider, get_authentication_service

__all__ = [
    "AppleAuthenticationProvider",
    "AppleCredential",
    "AuthenticationCancelled",
    "AuthenticationProvider",
    "AuthorizationFailed",
    "AuthorizationRequest",
    "AuthorizationResponse",
    "BackendError",
    "BackendErrorCode",
    "ClientConfigurationMissing",
    "Credential",
    "FacebookAuthenticationProvider",
    "FacebookCredential",
    "FacebookToken",
    "GoogleAuthenticationProvider",
    "GoogleCredential",
    "IdentityBridgeError",
    "MissingToken",
    "NotLoggedInError",
    "PasswordAuthenticationProvider",
    "PasswordCredential",
    "PermissionDeclined",
    "PreconditionError",
    "PresentationContext",
    "PresentationContextMissing",
    "PresentationSlot",
    "ProviderError",
    "SignInOptions",
    "SignInOutcomeUnknown",
    "get_authentication_provider",
    "get_authentication_service",
]
