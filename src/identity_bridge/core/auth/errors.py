"""Authentication error taxonomy.

Callers branch on exception type (and BackendError.code) to choose between
"try again", "permission required" or "account exists" messaging without
matching on backend text.
"""

from enum import Enum
from typing import Iterable, Optional

from identity_bridge.domain.models.auth import BackendCredential


class IdentityBridgeError(Exception):
    """Base class for all identity-bridge errors."""
    pass


# ============================================================================
# User-interaction errors (surfaced unchanged, never retried)
# ============================================================================

class ProviderError(IdentityBridgeError):
    """Credential acquisition failed at the identity provider."""
    pass


class AuthenticationCancelled(ProviderError):
    """User cancelled the provider's sign-in interaction."""

    def __init__(self, message: str = "Authentication cancelled by user"):
        super().__init__(message)


class PermissionDeclined(ProviderError):
    """User declined one or more requested permissions."""

    def __init__(self, permissions: Iterable[str]):
        self.permissions = frozenset(permissions)
        super().__init__(f"Permissions declined: {', '.join(sorted(self.permissions))}")


class MissingToken(ProviderError):
    """Provider completed without returning a usable token."""

    def __init__(self, message: str = "Provider did not return a token"):
        super().__init__(message)


class AuthorizationFailed(ProviderError):
    """Provider returned an OAuth error or the code exchange failed."""

    def __init__(self, error: str, description: Optional[str] = None):
        self.error = error
        self.description = description
        message = f"Authorization failed: {error}"
        if description:
            message = f"{message} ({description})"
        super().__init__(message)


# ============================================================================
# Precondition errors (caller or configuration defects)
# ============================================================================

class PreconditionError(IdentityBridgeError):
    """Sign-in cannot start because of a caller or configuration defect."""
    pass


class PresentationContextMissing(PreconditionError):
    """Provider needs a presentation context and none could be resolved."""

    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        super().__init__(f"{provider_name} requires a presentation context")


class ClientConfigurationMissing(PreconditionError):
    """Required client configuration (client ID, API key) is not set."""
    pass


# ============================================================================
# Backend errors
# ============================================================================

class BackendErrorCode(str, Enum):
    """Identity backend error codes"""
    CREDENTIAL_ALREADY_IN_USE = "credential_already_in_use"
    EMAIL_ALREADY_IN_USE = "email_already_in_use"
    USER_NOT_FOUND = "user_not_found"
    INVALID_CREDENTIAL = "invalid_credential"
    WRONG_PASSWORD = "wrong_password"
    USER_DISABLED = "user_disabled"
    TOO_MANY_REQUESTS = "too_many_requests"
    INVALID_ACTION_CODE = "invalid_action_code"
    EXPIRED_ACTION_CODE = "expired_action_code"
    WEAK_PASSWORD = "weak_password"
    REQUIRES_RECENT_LOGIN = "requires_recent_login"
    NETWORK_ERROR = "network_error"
    INTERNAL_ERROR = "internal_error"
    UNKNOWN = "unknown"


class BackendError(IdentityBridgeError):
    """Identity backend rejected a call.

    Attributes:
        code: Backend error code
        message: Backend-provided message (informational only)
        updated_credential: Corrected credential attached to conflict errors
    """

    def __init__(
        self,
        code: BackendErrorCode,
        message: Optional[str] = None,
        updated_credential: Optional[BackendCredential] = None,
    ):
        self.code = code
        self.message = message or code.value
        self.updated_credential = updated_credential
        super().__init__(f"{code.value}: {self.message}")


class SignInOutcomeUnknown(IdentityBridgeError):
    """Sign-in was cancelled after a backend call had been issued.

    The backend mutation may or may not have taken effect.
    """
    pass


class NotLoggedInError(IdentityBridgeError):
    """No signed-in user to provide an API token for."""

    def __init__(self, message: str = "User is not logged in"):
        super().__init__(message)
