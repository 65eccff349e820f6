"""OAuth 2.0 / OpenID Connect authentication providers.

Supports the social providers the identity backend federates with:
- Google
- Sign in with Apple
- Facebook Login

Each provider runs the authorization code flow with PKCE through a
presentation context (browser), exchanges the code for tokens and returns a
provider-specific credential. ID tokens are not verified here; the identity
backend verifies them when the credential is used.
"""

import json
import logging
import re
from abc import abstractmethod
from dataclasses import dataclass
from typing import Literal, Optional
from urllib.parse import urlencode

import httpx
from jose import jwt, JWTError

from identity_bridge.core.auth.errors import (
    AuthenticationCancelled,
    AuthorizationFailed,
    ClientConfigurationMissing,
    MissingToken,
    PermissionDeclined,
    PresentationContextMissing,
)
from identity_bridge.core.auth.provider import (
    AuthenticationProvider,
    AuthorizationRequest,
    AuthorizationResponse,
    Credential,
    PresentationContext,
    PresentationSlot,
)
from identity_bridge.domain.models.auth import BackendCredential, PersonName, UserData
from identity_bridge.utils.nonce import code_challenge, random_nonce_string, sha256

logger = logging.getLogger(__name__)

GOOGLE_PROVIDER_ID = "google.com"
APPLE_PROVIDER_ID = "apple.com"
FACEBOOK_PROVIDER_ID = "facebook.com"


# ============================================================================
# Credentials
# ============================================================================

@dataclass(frozen=True)
class GoogleCredential(Credential):
    """Google ID token and access token"""
    id_token: str
    access_token: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[PersonName] = None

    def to_backend_credential(self) -> BackendCredential:
        return BackendCredential.for_idp(
            GOOGLE_PROVIDER_ID,
            id_token=self.id_token,
            access_token=self.access_token,
        )

    @property
    def user_data(self) -> Optional[UserData]:
        if self.email is None and self.full_name is None:
            return None
        return UserData(full_name=self.full_name, email=self.email)


@dataclass(frozen=True)
class AppleCredential(Credential):
    """Apple ID token with the raw nonce bound into it"""
    id_token: str
    auth_code: str
    email: Optional[str] = None
    full_name: Optional[PersonName] = None
    nonce: Optional[str] = None

    def to_backend_credential(self) -> BackendCredential:
        return BackendCredential.for_idp(
            APPLE_PROVIDER_ID,
            id_token=self.id_token,
            raw_nonce=self.nonce,
        )

    @property
    def user_data(self) -> Optional[UserData]:
        # Apple only shares the name on the first authorization
        if self.full_name is None:
            return None
        return UserData(full_name=self.full_name)


@dataclass(frozen=True)
class FacebookToken:
    """Facebook token, either a Graph API access token or an OIDC ID token"""
    kind: Literal["access", "id"]
    value: str


@dataclass(frozen=True)
class FacebookCredential(Credential):
    """Facebook token with the nonce used for the request"""
    token: FacebookToken
    nonce: str

    def to_backend_credential(self) -> BackendCredential:
        if self.token.kind == "id":
            return BackendCredential.for_idp(
                FACEBOOK_PROVIDER_ID,
                id_token=self.token.value,
                raw_nonce=self.nonce,
            )
        return BackendCredential.for_idp(FACEBOOK_PROVIDER_ID, access_token=self.token.value)


# ============================================================================
# Providers
# ============================================================================

class OAuthAuthenticationProvider(AuthenticationProvider):
    """Authorization code + PKCE flow shared by the social providers.

    Subclasses declare their endpoints and build their own credential type
    from the token response.
    """

    provider_id: str
    authorization_endpoint: str
    token_endpoint: str
    revocation_endpoint: Optional[str] = None
    default_scopes: list[str] = []

    #: Send sha256(nonce) in the authorization request instead of the raw nonce
    hash_nonce: bool = False
    #: Fail with MissingToken when the token response has no id_token
    require_id_token: bool = True
    #: Fail with PermissionDeclined when requested scopes were not granted
    enforce_granted_scopes: bool = False
    #: Revoke the issued access token when the backend sign-in fails
    revoke_on_failure: bool = False

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str] = None,
        scopes: Optional[list[str]] = None,
        presentation_context: Optional[PresentationContext] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize OAuth provider.

        Args:
            client_id: OAuth 2.0 client ID
            client_secret: OAuth 2.0 client secret (optional for public clients)
            scopes: Scopes to request (default: provider defaults)
            presentation_context: Context to present the consent screen with;
                when omitted, AuthenticationService supplies its default
            timeout: HTTP timeout for token endpoint calls, in seconds
            transport: Optional httpx transport (tests)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = list(scopes) if scopes is not None else list(self.default_scopes)
        self.presentation = PresentationSlot(presentation_context)
        self.timeout = timeout
        self._transport = transport
        self._issued_access_token: Optional[str] = None

    async def credential(self) -> Credential:
        """Run the authorization flow and return the provider credential.

        Raises:
            ClientConfigurationMissing: If no client ID is configured
            PresentationContextMissing: If no presentation context is set
            AuthenticationCancelled: If the user cancelled the consent screen
            PermissionDeclined: If requested scopes were not granted
            MissingToken: If the provider issued no usable token
            AuthorizationFailed: On any other provider-side failure
        """
        if not self.client_id:
            raise ClientConfigurationMissing(f"{self.name} requires a client ID")

        context = self.presentation.context if self.presentation else None
        if context is None:
            raise PresentationContextMissing(self.name)

        state = random_nonce_string()
        nonce = random_nonce_string()
        code_verifier = random_nonce_string(64)
        redirect_uri = context.redirect_uri

        request = AuthorizationRequest(
            url=self.get_authorization_url(state, nonce, redirect_uri, code_verifier),
            state=state,
            redirect_uri=redirect_uri,
        )
        response = await context.present(request)
        code = self._check_authorization_response(response, state)

        tokens = await self._exchange_code(code, redirect_uri, code_verifier)

        if self.enforce_granted_scopes:
            declined = self._declined_scopes(response, tokens)
            if declined:
                logger.info(f"{self.name}: user declined permissions {sorted(declined)}")
                raise PermissionDeclined(declined)

        id_token = tokens.get("id_token")
        access_token = tokens.get("access_token")
        if not id_token and not access_token:
            raise MissingToken(f"{self.name} token response contained no token")
        if self.require_id_token and not id_token:
            raise MissingToken(f"{self.name} token response contained no ID token")

        self._issued_access_token = access_token
        claims = self._unverified_claims(id_token) if id_token else {}
        logger.info(f"{self.name}: credential obtained")
        return self._build_credential(tokens, claims, response, code, nonce)

    def get_authorization_url(
        self,
        state: str,
        nonce: str,
        redirect_uri: str,
        code_verifier: str
    ) -> str:
        """Generate the provider authorization URL.

        Args:
            state: CSRF protection state
            nonce: Raw nonce (hashed first when hash_nonce is set)
            redirect_uri: Callback URL
            code_verifier: PKCE code verifier

        Returns:
            Authorization URL to present to the user
        """
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "state": state,
            "nonce": sha256(nonce) if self.hash_nonce else nonce,
            "code_challenge": code_challenge(code_verifier),
            "code_challenge_method": "S256",
        }
        if self.scopes:
            params["scope"] = " ".join(self.scopes)
        params.update(self._extra_authorization_params())
        return f"{self.authorization_endpoint}?{urlencode(params)}"

    async def sign_in_succeeded(self) -> None:
        self._issued_access_token = None

    async def sign_in_failed(self, error: Exception) -> None:
        token = self._issued_access_token
        self._issued_access_token = None
        if not self.revoke_on_failure or not token:
            return
        try:
            await self._revoke_token(token)
            logger.info(f"{self.name}: revoked access token after failed sign-in")
        except httpx.HTTPError as e:
            logger.warning(f"{self.name}: token revocation failed: {e}")

    @abstractmethod
    def _build_credential(
        self,
        tokens: dict,
        claims: dict,
        response: AuthorizationResponse,
        code: str,
        nonce: str,
    ) -> Credential:
        """Build the provider credential from the token response."""
        pass

    def _extra_authorization_params(self) -> dict:
        return {}

    def _check_authorization_response(self, response: AuthorizationResponse, state: str) -> str:
        """Validate the redirect parameters and return the authorization code."""
        if response.error == "access_denied":
            raise AuthenticationCancelled()
        if response.error:
            raise AuthorizationFailed(response.error, response.error_description)
        if response.state != state:
            logger.warning(f"{self.name}: authorization state mismatch")
            raise AuthorizationFailed("invalid_state", "State parameter mismatch")
        if not response.code:
            raise AuthorizationFailed("invalid_response", "No authorization code received")
        return response.code

    async def _exchange_code(self, code: str, redirect_uri: str, code_verifier: str) -> dict:
        """Exchange the authorization code for tokens."""
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "code_verifier": code_verifier,
        }
        if self.client_secret:
            data["client_secret"] = self.client_secret

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.token_endpoint,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"}
                )
        except httpx.HTTPError as e:
            logger.error(f"{self.name} token endpoint unreachable: {e}")
            raise AuthorizationFailed("token_exchange_failed", str(e)) from e

        if response.status_code != 200:
            logger.error(f"{self.name} token exchange failed: {response.status_code}")
            raise AuthorizationFailed(
                "token_exchange_failed",
                f"Token endpoint returned {response.status_code}",
            )

        try:
            return response.json()
        except ValueError as e:
            raise AuthorizationFailed(
                "token_exchange_failed",
                "Token endpoint returned a non-JSON body",
            ) from e

    async def _revoke_token(self, token: str) -> None:
        if not self.revocation_endpoint:
            return
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                self.revocation_endpoint,
                data={"token": token},
                headers={"Content-Type": "application/x-www-form-urlencoded"}
            )
            response.raise_for_status()

    def _declined_scopes(self, response: AuthorizationResponse, tokens: dict) -> set[str]:
        """Requested scopes the user did not grant."""
        if response.denied_scopes:
            return _split_scopes(response.denied_scopes)
        granted = tokens.get("scope") or response.granted_scopes
        if granted is None:
            return set()
        return set(self.scopes) - _split_scopes(granted)

    def _unverified_claims(self, id_token: str) -> dict:
        try:
            return jwt.get_unverified_claims(id_token)
        except JWTError as e:
            raise AuthorizationFailed("invalid_id_token", str(e)) from e


class GoogleAuthenticationProvider(OAuthAuthenticationProvider):
    """Google Sign-In via OpenID Connect."""

    provider_id = GOOGLE_PROVIDER_ID
    authorization_endpoint = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint = "https://oauth2.googleapis.com/token"
    revocation_endpoint = "https://oauth2.googleapis.com/revoke"
    default_scopes = ["openid", "email", "profile"]

    def _build_credential(self, tokens, claims, response, code, nonce) -> GoogleCredential:
        full_name = None
        if claims.get("given_name") or claims.get("family_name"):
            full_name = PersonName(
                given_name=claims.get("given_name"),
                family_name=claims.get("family_name"),
            )
        return GoogleCredential(
            id_token=tokens["id_token"],
            access_token=tokens.get("access_token"),
            email=claims.get("email"),
            full_name=full_name,
        )


class AppleAuthenticationProvider(OAuthAuthenticationProvider):
    """Sign in with Apple.

    ``client_secret`` is the ES256 client secret JWT generated for the
    Services ID. Apple posts the user's name back on the first authorization
    only, as a JSON ``user`` form field.
    """

    provider_id = APPLE_PROVIDER_ID
    authorization_endpoint = "https://appleid.apple.com/auth/authorize"
    token_endpoint = "https://appleid.apple.com/auth/token"
    revocation_endpoint = "https://appleid.apple.com/auth/revoke"
    default_scopes = ["name", "email"]
    hash_nonce = True

    def _extra_authorization_params(self) -> dict:
        # Apple requires form_post whenever name or email is requested
        if self.scopes:
            return {"response_mode": "form_post"}
        return {}

    def _build_credential(self, tokens, claims, response, code, nonce) -> AppleCredential:
        email = claims.get("email")
        full_name = None
        if response.user:
            try:
                user = json.loads(response.user)
            except json.JSONDecodeError:
                logger.warning("Apple: ignoring malformed user payload")
                user = {}
            name = user.get("name") or {}
            if name.get("firstName") or name.get("lastName"):
                full_name = PersonName(
                    given_name=name.get("firstName"),
                    family_name=name.get("lastName"),
                )
            email = email or user.get("email")
        return AppleCredential(
            id_token=tokens["id_token"],
            auth_code=code,
            email=email,
            full_name=full_name,
            nonce=nonce,
        )


class FacebookAuthenticationProvider(OAuthAuthenticationProvider):
    """Facebook Login.

    Requested permissions are enforced: declining any of them fails with
    PermissionDeclined. When the backend sign-in fails, the app's grant is
    revoked so the next attempt starts from a clean login.
    """

    provider_id = FACEBOOK_PROVIDER_ID
    authorization_endpoint = "https://www.facebook.com/v19.0/dialog/oauth"
    token_endpoint = "https://graph.facebook.com/v19.0/oauth/access_token"
    revocation_endpoint = "https://graph.facebook.com/v19.0/me/permissions"
    default_scopes = ["public_profile", "email"]
    require_id_token = False
    enforce_granted_scopes = True
    revoke_on_failure = True

    def _extra_authorization_params(self) -> dict:
        return {"return_scopes": "true"}

    def _build_credential(self, tokens, claims, response, code, nonce) -> FacebookCredential:
        if tokens.get("access_token"):
            token = FacebookToken(kind="access", value=tokens["access_token"])
        else:
            token = FacebookToken(kind="id", value=tokens["id_token"])
        return FacebookCredential(token=token, nonce=nonce)

    async def _revoke_token(self, token: str) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.delete(
                self.revocation_endpoint,
                params={"access_token": token},
            )
            response.raise_for_status()


def _split_scopes(value: str) -> set[str]:
    return {s for s in re.split(r"[,\s]+", value) if s}
