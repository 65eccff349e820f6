"""Authentication Service

Drives the sign-in / link / sign-up decision flow for any
AuthenticationProvider against an injected IdentityBackend.

Sign-in flow:
1. Resolve the provider's presentation context (if it needs one)
2. Obtain the provider credential (user interaction, never retried)
3. Convert it to a backend credential
4. Sign in, linking to the current account unless the provider opts out
5. Recover from a credential conflict with one direct sign-in, or fall back
   to account creation for password providers
6. Normalize the backend result
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from identity_bridge.core.auth.errors import (
    BackendError,
    BackendErrorCode,
    NotLoggedInError,
    PresentationContextMissing,
    SignInOutcomeUnknown,
)
from identity_bridge.core.auth.options import SignInOptions
from identity_bridge.core.auth.provider import (
    AuthenticationProvider,
    Credential,
    PresentationContext,
)
from identity_bridge.domain.models.auth import (
    AuthenticationResult,
    BackendCredential,
    BackendSignInResult,
    BackendUser,
)
from identity_bridge.infrastructure.backend.facade import IdentityBackend
from identity_bridge.infrastructure.backend.session import AuthSession, PushTokenType

logger = logging.getLogger(__name__)

T = TypeVar("T")

PresentationContextFactory = Callable[[], Optional[PresentationContext]]


class AuthenticationService:
    """Authentication orchestrator.

    Attributes:
        backend: Identity backend performing sign-in calls
        session: Session handle shared with the backend (owned by the host)
        default_presentation_context: Called on demand to supply a
            presentation context to providers that need one and have none
    """

    def __init__(
        self,
        backend: IdentityBackend,
        session: Optional[AuthSession] = None,
        default_presentation_context: Optional[PresentationContextFactory] = None,
    ):
        self.backend = backend
        self.session = session if session is not None else backend.session
        self.default_presentation_context = default_presentation_context

    # ========================================================================
    # Sign-in orchestration
    # ========================================================================

    async def sign_in(self, provider: AuthenticationProvider) -> AuthenticationResult:
        """Sign in (or link) with the credential produced by a provider.

        Args:
            provider: Provider to obtain the credential from

        Returns:
            AuthenticationResult for the signed-in user

        Raises:
            PreconditionError: Presentation context or client configuration missing
            ProviderError: Credential acquisition failed (cancelled, declined, ...)
            BackendError: Backend rejected the sign-in and no recovery applied
            SignInOutcomeUnknown: Cancelled after a backend call was issued
        """
        self._resolve_presentation_context(provider)

        logger.debug(f"{provider.name}: requesting credential")
        credential = await provider.credential()

        logger.debug(f"{provider.name}: converting credential")
        backend_credential = credential.to_backend_credential()

        try:
            result = await self._attempt_sign_in(provider, credential, backend_credential)
        except (BackendError, SignInOutcomeUnknown) as e:
            logger.debug(f"{provider.name}: sign-in failed ({e})")
            await provider.sign_in_failed(e)
            raise

        await provider.sign_in_succeeded()
        logger.info(
            f"{provider.name}: signed in user {result.user.uid} "
            f"(new_user={result.is_new_user})"
        )
        return AuthenticationResult.from_backend(result, credential.user_data)

    def _resolve_presentation_context(self, provider: AuthenticationProvider) -> None:
        slot = provider.presentation
        if slot is None or slot.is_set:
            return

        context = None
        if self.default_presentation_context is not None:
            context = self.default_presentation_context()
        if context is None:
            raise PresentationContextMissing(provider.name)

        slot.set(context)
        logger.debug(f"{provider.name}: default presentation context supplied")

    async def _attempt_sign_in(
        self,
        provider: AuthenticationProvider,
        credential: Credential,
        backend_credential: BackendCredential,
    ) -> BackendSignInResult:
        options = provider.sign_in_options
        link = not (
            provider.is_password_based
            and SignInOptions.TRY_LINK_ON_SIGN_IN not in options
        )

        logger.debug(f"{provider.name}: attempting sign-in (link={link})")
        try:
            return await self._backend_call(self.backend.sign_in(backend_credential, link=link))
        except BackendError as e:
            sign_up = provider.sign_up_credentials(credential)
            if sign_up is not None and self._should_sign_up(options, e):
                email, password = sign_up
                logger.warning(
                    f"{provider.name}: sign-in failed with {e.code.value}, "
                    f"attempting sign-up"
                )
                return await self._backend_call(self.backend.sign_up(email, password))

            if e.code == BackendErrorCode.CREDENTIAL_ALREADY_IN_USE:
                retry_credential = e.updated_credential or backend_credential
                logger.warning(
                    f"{provider.name}: credential already in use, retrying direct sign-in "
                    f"(updated_credential={e.updated_credential is not None})"
                )
                return await self._backend_call(
                    self.backend.sign_in(retry_credential, link=False)
                )
            raise

    @staticmethod
    def _should_sign_up(options: SignInOptions, error: BackendError) -> bool:
        if SignInOptions.SIGN_UP_ON_ANY_ERROR in options:
            return True
        return (
            SignInOptions.SIGN_UP_ON_USER_NOT_FOUND in options
            and error.code == BackendErrorCode.USER_NOT_FOUND
        )

    @staticmethod
    async def _backend_call(call: Awaitable[T]) -> T:
        """Await a backend mutation; cancellation past this point has unknown outcome"""
        try:
            return await call
        except asyncio.CancelledError as e:
            logger.warning("Sign-in cancelled after backend call was issued")
            raise SignInOutcomeUnknown(
                "Sign-in was cancelled while the backend call was in flight"
            ) from e

    # ========================================================================
    # Session and account operations
    # ========================================================================

    @property
    def user(self) -> Optional[BackendUser]:
        """Currently signed-in user, if any"""
        return self.session.user

    @property
    def is_user_logged_in(self) -> bool:
        """Check if a non-anonymous user is signed in"""
        return self.user is not None and not self.user.is_anonymous

    async def sign_in_anonymously(self) -> AuthenticationResult:
        result = await self.backend.sign_in_anonymously()
        logger.info(f"Signed in anonymous user {result.user.uid}")
        return AuthenticationResult.from_backend(result)

    async def sign_up(self, email: str, password: str) -> AuthenticationResult:
        result = await self.backend.sign_up(email, password)
        return AuthenticationResult.from_backend(result)

    async def sign_out(self) -> None:
        await self.backend.sign_out()
        logger.info("User signed out")

    async def token(self, force_refresh: bool = False) -> Optional[str]:
        return await self.backend.token(force_refresh=force_refresh)

    async def api_token(self) -> str:
        """API token for the signed-in user.

        Raises:
            NotLoggedInError: If no user is signed in
        """
        token = await self.token()
        if token is None:
            raise NotLoggedInError()
        return token

    async def remove_api_token_from_storage(self) -> None:
        """Drop the API token by signing the user out"""
        try:
            await self.sign_out()
        except BackendError as e:
            logger.error(f"Unable to sign out: {e}")

    async def request_password_reset(self, email: str) -> None:
        await self.backend.request_password_reset(email)

    async def verify_password_reset_code(self, code: str) -> str:
        return await self.backend.verify_password_reset_code(code)

    async def change_password(self, code: str, new_password: str) -> None:
        await self.backend.change_password(code, new_password)

    async def apply_action_code_and_reload(self, code: str) -> None:
        await self.backend.apply_action_code_and_reload(code)

    async def set_push_token(self, token: bytes, token_type: PushTokenType) -> None:
        await self.backend.set_push_token(token, token_type)
