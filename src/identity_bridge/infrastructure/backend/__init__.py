"""Identity backend facade and implementations."""

from .facade import IdentityBackend
from .identity_toolkit import IdentityToolkitBackend
from .session import AuthSession, PushTokenType

__all__ = [
    "AuthSession",
    "IdentityBackend",
    "IdentityToolkitBackend",
    "PushTokenType",
]
