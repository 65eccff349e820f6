"""
Pytest configuration and fixtures for identity-bridge tests.

Provides fixtures for:
- Mocked identity backend with an in-memory session
- Backend sign-in results
- Presentation contexts answering authorization requests
"""

from typing import Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from identity_bridge.core.auth.provider import (
    AuthorizationRequest,
    AuthorizationResponse,
    PresentationContext,
)
from identity_bridge.domain.models.auth import BackendSignInResult, BackendUser
from identity_bridge.infrastructure.backend.facade import IdentityBackend
from identity_bridge.infrastructure.backend.session import AuthSession


def make_result(
    uid: str = "user-123",
    email: Optional[str] = "a@x.com",
    is_new_user: bool = False,
    is_anonymous: bool = False,
    email_verified: bool = False,
) -> BackendSignInResult:
    """Build a backend sign-in result"""
    return BackendSignInResult(
        user=BackendUser(
            uid=uid,
            email=email,
            is_anonymous=is_anonymous,
            email_verified=email_verified,
        ),
        is_new_user=is_new_user,
    )


class StubPresentationContext(PresentationContext):
    """Presentation context answering every request via a callback"""

    def __init__(
        self,
        respond: Callable[[AuthorizationRequest], AuthorizationResponse],
        redirect_uri: str = "http://127.0.0.1:8765/callback",
    ):
        self._respond = respond
        self._redirect_uri = redirect_uri
        self.requests: list[AuthorizationRequest] = []

    @property
    def redirect_uri(self) -> str:
        return self._redirect_uri

    async def present(self, request: AuthorizationRequest) -> AuthorizationResponse:
        self.requests.append(request)
        return self._respond(request)


@pytest.fixture
def session():
    """Empty in-memory session"""
    return AuthSession()


@pytest.fixture
def backend(session):
    """Identity backend with every operation mocked"""
    mock = MagicMock(spec=IdentityBackend)
    mock.session = session
    mock.sign_in = AsyncMock(return_value=make_result())
    mock.sign_up = AsyncMock(return_value=make_result(is_new_user=True))
    mock.sign_in_anonymously = AsyncMock(
        return_value=make_result(uid="anon-1", email=None, is_new_user=True, is_anonymous=True)
    )
    mock.sign_out = AsyncMock(return_value=None)
    mock.token = AsyncMock(return_value="id-token")
    mock.request_password_reset = AsyncMock(return_value=None)
    mock.verify_password_reset_code = AsyncMock(return_value="a@x.com")
    mock.change_password = AsyncMock(return_value=None)
    mock.apply_action_code_and_reload = AsyncMock(return_value=None)
    mock.set_push_token = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def approving_context():
    """Presentation context that approves with code 'auth-code'"""
    return StubPresentationContext(
        lambda request: AuthorizationResponse(code="auth-code", state=request.state)
    )
