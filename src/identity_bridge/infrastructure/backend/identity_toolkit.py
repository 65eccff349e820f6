"""Identity Toolkit REST backend.

IdentityBackend implementation over the Google Identity Toolkit v1 REST API
(the API behind Firebase Authentication and Identity Platform). Also works
against the Firebase Auth emulator by pointing base_url at it.

Endpoints used:
- accounts:signUp / accounts:signInWithPassword / accounts:signInWithIdp
- accounts:update (linking, action codes) / accounts:lookup (reload)
- accounts:sendOobCode / accounts:resetPassword (password reset)
- securetoken v1/token (ID token refresh)
"""

import logging
from typing import Optional

import httpx

from identity_bridge.core.auth.errors import (
    BackendError,
    BackendErrorCode,
    ClientConfigurationMissing,
)
from identity_bridge.domain.models.auth import (
    BackendCredential,
    BackendSignInResult,
    BackendUser,
)
from identity_bridge.infrastructure.backend.facade import IdentityBackend
from identity_bridge.infrastructure.backend.session import AuthSession, PushTokenType

logger = logging.getLogger(__name__)

DEFAULT_IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
DEFAULT_SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

# REST error message token -> backend error code
ERROR_CODES: dict[str, BackendErrorCode] = {
    "EMAIL_NOT_FOUND": BackendErrorCode.USER_NOT_FOUND,
    "USER_NOT_FOUND": BackendErrorCode.USER_NOT_FOUND,
    "INVALID_PASSWORD": BackendErrorCode.WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": BackendErrorCode.INVALID_CREDENTIAL,
    "INVALID_IDP_RESPONSE": BackendErrorCode.INVALID_CREDENTIAL,
    "INVALID_CREDENTIAL": BackendErrorCode.INVALID_CREDENTIAL,
    "MISSING_OR_INVALID_NONCE": BackendErrorCode.INVALID_CREDENTIAL,
    "USER_DISABLED": BackendErrorCode.USER_DISABLED,
    "EMAIL_EXISTS": BackendErrorCode.EMAIL_ALREADY_IN_USE,
    "FEDERATED_USER_ID_ALREADY_LINKED": BackendErrorCode.CREDENTIAL_ALREADY_IN_USE,
    "CREDENTIAL_ALREADY_IN_USE": BackendErrorCode.CREDENTIAL_ALREADY_IN_USE,
    "TOO_MANY_ATTEMPTS_TRY_LATER": BackendErrorCode.TOO_MANY_REQUESTS,
    "INVALID_OOB_CODE": BackendErrorCode.INVALID_ACTION_CODE,
    "EXPIRED_OOB_CODE": BackendErrorCode.EXPIRED_ACTION_CODE,
    "WEAK_PASSWORD": BackendErrorCode.WEAK_PASSWORD,
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": BackendErrorCode.REQUIRES_RECENT_LOGIN,
    "INVALID_ID_TOKEN": BackendErrorCode.REQUIRES_RECENT_LOGIN,
    "TOKEN_EXPIRED": BackendErrorCode.REQUIRES_RECENT_LOGIN,
    "INVALID_REFRESH_TOKEN": BackendErrorCode.REQUIRES_RECENT_LOGIN,
    "INTERNAL_ERROR": BackendErrorCode.INTERNAL_ERROR,
}


def error_code_for(message: str) -> BackendErrorCode:
    """Map a REST error message (e.g. 'WEAK_PASSWORD : ...') to an error code"""
    token = message.split(":", 1)[0].strip()
    return ERROR_CODES.get(token, BackendErrorCode.UNKNOWN)


class IdentityToolkitBackend(IdentityBackend):
    """Identity Toolkit REST client.

    Configuration:
        IDENTITY_API_KEY=<web API key>
        IDENTITY_TOOLKIT_URL=https://identitytoolkit.googleapis.com/v1 (default)
        SECURE_TOKEN_URL=https://securetoken.googleapis.com/v1/token (default)
    """

    def __init__(
        self,
        api_key: Optional[str],
        session: Optional[AuthSession] = None,
        base_url: str = DEFAULT_IDENTITY_TOOLKIT_URL,
        secure_token_url: str = DEFAULT_SECURE_TOKEN_URL,
        timeout: float = 10.0,
        request_uri: str = "http://localhost",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Identity Toolkit backend.

        Args:
            api_key: Web API key of the project
            session: Session handle to sign users into (new one if omitted)
            base_url: Identity Toolkit v1 base URL
            secure_token_url: Secure token endpoint for ID token refresh
            timeout: HTTP timeout in seconds
            request_uri: requestUri sent with signInWithIdp
            transport: Optional httpx transport (tests)

        Raises:
            ClientConfigurationMissing: If api_key is empty
        """
        if not api_key:
            raise ClientConfigurationMissing("Identity backend requires an API key")

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.secure_token_url = secure_token_url
        self.timeout = timeout
        self.request_uri = request_uri
        self._session = session if session is not None else AuthSession()
        self._transport = transport

    @property
    def session(self) -> AuthSession:
        return self._session

    async def sign_in_anonymously(self) -> BackendSignInResult:
        data = await self._call("signUp", {"returnSecureToken": True})
        return await self._complete_sign_in(data, is_new_user=True, provider_id=None)

    async def sign_up(self, email: str, password: str) -> BackendSignInResult:
        data = await self._call("signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        logger.info(f"Account created: {data.get('localId')}")
        return await self._complete_sign_in(data, is_new_user=True, provider_id="password")

    async def sign_in(self, credential: BackendCredential, link: bool) -> BackendSignInResult:
        link = link and self._session.is_authenticated
        if credential.is_password:
            return await self._sign_in_with_password(credential, link)
        return await self._sign_in_with_idp(credential, link)

    async def sign_out(self) -> None:
        self._session.clear()

    async def token(self, force_refresh: bool = False) -> Optional[str]:
        if not self._session.is_authenticated:
            return None
        if force_refresh or self._session.is_expired:
            await self._refresh_id_token()
        return self._session.id_token

    async def request_password_reset(self, email: str) -> None:
        await self._call("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})
        logger.info("Password reset email requested")

    async def verify_password_reset_code(self, code: str) -> str:
        data = await self._call("resetPassword", {"oobCode": code})
        return data["email"]

    async def change_password(self, code: str, new_password: str) -> None:
        await self._call("resetPassword", {"oobCode": code, "newPassword": new_password})
        logger.info("Password changed via reset code")

    async def apply_action_code_and_reload(self, code: str) -> None:
        await self._call("update", {"oobCode": code})
        if self._session.is_authenticated:
            await self._reload_user()

    async def set_push_token(self, token: bytes, token_type: PushTokenType) -> None:
        self._session.push_token = token.hex()
        self._session.push_token_type = token_type
        logger.debug(f"Push token registered ({token_type.value})")

    # ------------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------------

    async def _sign_in_with_password(
        self,
        credential: BackendCredential,
        link: bool
    ) -> BackendSignInResult:
        if link:
            data = await self._call("update", {
                "idToken": self._session.id_token,
                "email": credential.email,
                "password": credential.password,
                "returnSecureToken": True,
            })
        else:
            data = await self._call("signInWithPassword", {
                "email": credential.email,
                "password": credential.password,
                "returnSecureToken": True,
            })
        return await self._complete_sign_in(data, is_new_user=False, provider_id="password")

    async def _sign_in_with_idp(
        self,
        credential: BackendCredential,
        link: bool
    ) -> BackendSignInResult:
        payload = {
            "requestUri": self.request_uri,
            "returnSecureToken": True,
            "returnIdpCredential": True,
        }
        if credential.pending_token:
            payload["pendingToken"] = credential.pending_token
        else:
            payload["postBody"] = credential.to_idp_post_body()
        if link:
            payload["idToken"] = self._session.id_token

        data = await self._call("signInWithIdp", payload)

        # With returnIdpCredential the API reports conflicts in a 200 body
        error_message = data.get("errorMessage")
        if error_message:
            raise BackendError(
                error_code_for(error_message),
                error_message,
                updated_credential=self._updated_credential(data, credential),
            )
        if data.get("needConfirmation"):
            raise BackendError(
                BackendErrorCode.EMAIL_ALREADY_IN_USE,
                "Account exists with a different credential",
                updated_credential=self._updated_credential(data, credential),
            )

        return await self._complete_sign_in(
            data,
            is_new_user=data.get("isNewUser", False),
            provider_id=credential.provider_id,
        )

    @staticmethod
    def _updated_credential(
        data: dict,
        credential: BackendCredential
    ) -> Optional[BackendCredential]:
        """Credential the backend handed back alongside a conflict, if any"""
        if not any(data.get(k) for k in ("pendingToken", "oauthIdToken", "oauthAccessToken")):
            return None
        return BackendCredential(
            provider_id=data.get("providerId", credential.provider_id),
            id_token=data.get("oauthIdToken"),
            access_token=data.get("oauthAccessToken"),
            pending_token=data.get("pendingToken"),
        )

    async def _complete_sign_in(
        self,
        data: dict,
        is_new_user: bool,
        provider_id: Optional[str]
    ) -> BackendSignInResult:
        """Store tokens in the session and reload the full user record.

        The sign-in already took effect, so a failed reload keeps the user
        built from the sign-in response instead of failing the call.
        """
        user = BackendUser(
            uid=data["localId"],
            email=data.get("email"),
            display_name=data.get("displayName"),
            is_anonymous=provider_id is None,
            email_verified=data.get("emailVerified", False),
        )
        self._session.update(
            user=user,
            id_token=data["idToken"],
            refresh_token=data.get("refreshToken"),
            expires_in=data.get("expiresIn"),
        )
        try:
            user = await self._reload_user()
        except BackendError as e:
            logger.warning(f"Signed in user {user.uid} but reload failed: {e}")
        return BackendSignInResult(user=user, is_new_user=is_new_user, provider_id=provider_id)

    async def _reload_user(self) -> BackendUser:
        data = await self._call("lookup", {"idToken": self._session.id_token})
        users = data.get("users") or []
        if not users:
            raise BackendError(BackendErrorCode.USER_NOT_FOUND, "Signed-in user no longer exists")
        user = BackendUser.from_dict(users[0])
        self._session.user = user
        return user

    async def _refresh_id_token(self) -> None:
        if not self._session.refresh_token:
            raise BackendError(BackendErrorCode.REQUIRES_RECENT_LOGIN, "No refresh token")
        data = await self._send(
            self.secure_token_url,
            form={"grant_type": "refresh_token", "refresh_token": self._session.refresh_token},
        )
        self._session.update_tokens(
            id_token=data["id_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
        )
        logger.debug("ID token refreshed")

    async def _call(self, method: str, payload: dict) -> dict:
        return await self._send(f"{self.base_url}/accounts:{method}", json=payload)

    async def _send(
        self,
        url: str,
        json: Optional[dict] = None,
        form: Optional[dict] = None
    ) -> dict:
        """POST to the backend and map failures to BackendError"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    params={"key": self.api_key},
                    json=json,
                    data=form,
                )
        except httpx.HTTPError as e:
            logger.error(f"Identity backend unreachable: {e}")
            raise BackendError(BackendErrorCode.NETWORK_ERROR, str(e)) from e

        if response.status_code != 200:
            raise self._error_from_response(response)
        return response.json()

    @staticmethod
    def _error_from_response(response: httpx.Response) -> BackendError:
        try:
            message = response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            logger.error(f"Identity backend error without payload: {response.status_code}")
            return BackendError(BackendErrorCode.UNKNOWN, f"HTTP {response.status_code}")

        code = error_code_for(message)
        logger.debug(f"Identity backend error {response.status_code}: {message}")
        return BackendError(code, message)
