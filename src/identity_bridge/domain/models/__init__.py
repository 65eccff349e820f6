"""Domain models for identity-bridge"""

from identity_bridge.domain.models.auth import (
    PASSWORD_PROVIDER_ID,
    AuthenticationResult,
    BackendCredential,
    BackendSignInResult,
    BackendUser,
    PersonName,
    UserData,
)

__all__ = [
    "PASSWORD_PROVIDER_ID",
    "AuthenticationResult",
    "BackendCredential",
    "BackendSignInResult",
    "BackendUser",
    "PersonName",
    "UserData",
]
