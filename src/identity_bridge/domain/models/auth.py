"""Authentication Data Models

Purpose: Define data structures passed between providers, the identity
backend and callers of the authentication service.

Key Components:
- BackendCredential: Backend-native credential handle, consumed by one call
- BackendUser: User as reported by the identity backend
- BackendSignInResult: Raw outcome of a sign-in, link or sign-up call
- UserData / PersonName: Profile data collected by a provider
- AuthenticationResult: Normalized result returned to callers
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict


PASSWORD_PROVIDER_ID = "password"


@dataclass(frozen=True)
class BackendCredential:
    """Backend-native credential handle

    Produced by converting a provider credential. Immutable and compared by
    value, so converting the same credential twice yields equal handles.

    Attributes:
        provider_id: Backend provider identifier ('password', 'google.com', ...)
        email: Email for password credentials
        password: Secret for password credentials
        id_token: OIDC ID token issued by the identity provider
        access_token: OAuth access token issued by the identity provider
        raw_nonce: Unhashed nonce that was bound into the ID token
        pending_token: Opaque token the backend hands back on conflicts
    """
    provider_id: str
    email: Optional[str] = None
    password: Optional[str] = None
    id_token: Optional[str] = None
    access_token: Optional[str] = None
    raw_nonce: Optional[str] = None
    pending_token: Optional[str] = None

    @property
    def is_password(self) -> bool:
        return self.provider_id == PASSWORD_PROVIDER_ID

    @classmethod
    def for_password(cls, email: str, password: str) -> "BackendCredential":
        return cls(provider_id=PASSWORD_PROVIDER_ID, email=email, password=password)

    @classmethod
    def for_idp(
        cls,
        provider_id: str,
        id_token: Optional[str] = None,
        access_token: Optional[str] = None,
        raw_nonce: Optional[str] = None,
    ) -> "BackendCredential":
        return cls(
            provider_id=provider_id,
            id_token=id_token,
            access_token=access_token,
            raw_nonce=raw_nonce,
        )

    def to_idp_post_body(self) -> str:
        """Encode a federated credential as a signInWithIdp postBody"""
        params = {"providerId": self.provider_id}
        if self.id_token:
            params["id_token"] = self.id_token
        if self.access_token:
            params["access_token"] = self.access_token
        if self.raw_nonce:
            params["nonce"] = self.raw_nonce
        return urlencode(params)

    def __repr__(self) -> str:
        # Secrets stay out of logs and tracebacks
        return f"BackendCredential(provider_id={self.provider_id!r})"


@dataclass
class BackendUser:
    """User account as reported by the identity backend"""
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    is_anonymous: bool = False
    email_verified: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "BackendUser":
        """Create from an accounts:lookup / sign-in response entry"""
        return cls(
            uid=data["localId"],
            email=data.get("email"),
            display_name=data.get("displayName"),
            is_anonymous=not (data.get("email") or data.get("providerUserInfo")),
            email_verified=data.get("emailVerified", False),
        )


@dataclass
class BackendSignInResult:
    """Raw result of a successful sign-in, link or sign-up call"""
    user: BackendUser
    is_new_user: bool = False
    provider_id: Optional[str] = None


class PersonName(BaseModel):
    """Structured person name collected by a provider"""

    model_config = ConfigDict(frozen=True)

    given_name: Optional[str] = None
    family_name: Optional[str] = None
    nickname: Optional[str] = None

    @property
    def formatted(self) -> str:
        parts = [p for p in (self.given_name, self.family_name) if p]
        if parts:
            return " ".join(parts)
        return self.nickname or ""


class UserData(BaseModel):
    """Profile data collected by a provider during credential acquisition"""

    model_config = ConfigDict(frozen=True)

    full_name: Optional[PersonName] = None
    email: Optional[str] = None


class AuthenticationResult(BaseModel):
    """Normalized outcome of AuthenticationService.sign_in

    Derived read-only from the backend result. ``user_data`` carries what the
    provider collected, independent of what the backend returned.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    user: BackendUser
    is_anonymous: bool
    is_email_verified: bool
    is_new_user: bool
    user_data: Optional[UserData] = None

    @classmethod
    def from_backend(
        cls,
        result: BackendSignInResult,
        user_data: Optional[UserData] = None,
    ) -> "AuthenticationResult":
        return cls(
            user=result.user,
            is_anonymous=result.user.is_anonymous,
            is_email_verified=result.user.email_verified,
            is_new_user=result.is_new_user,
            user_data=user_data,
        )
