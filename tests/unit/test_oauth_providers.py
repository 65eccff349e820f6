"""Unit tests for the OAuth authentication providers

Token endpoints are served by httpx.MockTransport; the consent screen is
answered by a stub presentation context.
"""

import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from jose import jwt

from conftest import StubPresentationContext
from identity_bridge.core.auth.errors import (
    AuthenticationCancelled,
    AuthorizationFailed,
    ClientConfigurationMissing,
    IdentityBridgeError,
    MissingToken,
    PermissionDeclined,
    PresentationContextMissing,
)
from identity_bridge.core.auth.oauth import (
    AppleAuthenticationProvider,
    AppleCredential,
    FacebookAuthenticationProvider,
    FacebookCredential,
    FacebookToken,
    GoogleAuthenticationProvider,
    GoogleCredential,
)
from identity_bridge.core.auth.provider import AuthorizationResponse
from identity_bridge.domain.models.auth import BackendCredential, PersonName
from identity_bridge.utils.nonce import code_challenge, sha256

pytestmark = pytest.mark.unit


def make_id_token(**claims) -> str:
    """Unsigned-for-our-purposes ID token; claims are read without verification"""
    claims.setdefault("sub", "provider-user-1")
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def token_transport(payload: dict, status_code: int = 200, requests: list = None):
    """Mock transport answering every request with the given JSON payload"""
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


def query_of(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def approve(**extra):
    """Respond to the consent screen with a code and the expected state"""
    return lambda request: AuthorizationResponse(code="auth-code", state=request.state, **extra)


@pytest.mark.unit
class TestAuthorizationFlow:
    """Test the shared authorization code flow"""

    @pytest.mark.asyncio
    async def test_authorization_url(self, approving_context):
        """Happy path: authorization URL carries client, PKCE and scopes"""
        transport = token_transport({"id_token": make_id_token(), "access_token": "at"})
        provider = GoogleAuthenticationProvider(
            client_id="google-client",
            presentation_context=approving_context,
            transport=transport,
        )

        await provider.credential()

        request = approving_context.requests[0]
        params = query_of(request.url)
        assert request.url.startswith(GoogleAuthenticationProvider.authorization_endpoint)
        assert params["client_id"] == "google-client"
        assert params["response_type"] == "code"
        assert params["redirect_uri"] == approving_context.redirect_uri
        assert params["state"] == request.state
        assert params["scope"] == "openid email profile"
        assert params["code_challenge_method"] == "S256"

    @pytest.mark.asyncio
    async def test_code_exchange_sends_verifier(self, approving_context):
        """Happy path: token request carries the code and a verifier matching the challenge"""
        requests = []
        transport = token_transport(
            {"id_token": make_id_token(), "access_token": "at"}, requests=requests
        )
        provider = GoogleAuthenticationProvider(
            client_id="google-client",
            client_secret="google-secret",
            presentation_context=approving_context,
            transport=transport,
        )

        await provider.credential()

        form = {k: v[0] for k, v in parse_qs(requests[0].content.decode()).items()}
        challenge = query_of(approving_context.requests[0].url)["code_challenge"]
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "auth-code"
        assert form["client_secret"] == "google-secret"
        assert code_challenge(form["code_verifier"]) == challenge

    @pytest.mark.asyncio
    async def test_missing_client_id(self, approving_context):
        """Bad input: no client ID fails before presenting anything"""
        provider = GoogleAuthenticationProvider(client_id=None, presentation_context=approving_context)

        with pytest.raises(ClientConfigurationMissing):
            await provider.credential()

        assert approving_context.requests == []

    @pytest.mark.asyncio
    async def test_missing_presentation_context(self):
        """Bad input: provider without a presentation context fails"""
        provider = GoogleAuthenticationProvider(client_id="google-client")

        with pytest.raises(PresentationContextMissing):
            await provider.credential()

    @pytest.mark.asyncio
    async def test_access_denied_is_cancellation(self):
        """Edge case: access_denied on the redirect means the user cancelled"""
        context = StubPresentationContext(
            lambda r: AuthorizationResponse(error="access_denied", state=r.state)
        )
        provider = GoogleAuthenticationProvider(client_id="c", presentation_context=context)

        with pytest.raises(AuthenticationCancelled):
            await provider.credential()

    @pytest.mark.asyncio
    async def test_provider_error(self):
        """Bad input: other redirect errors raise AuthorizationFailed"""
        context = StubPresentationContext(
            lambda r: AuthorizationResponse(
                error="server_error", error_description="boom", state=r.state
            )
        )
        provider = GoogleAuthenticationProvider(client_id="c", presentation_context=context)

        with pytest.raises(AuthorizationFailed) as exc_info:
            await provider.credential()

        assert exc_info.value.error == "server_error"

    @pytest.mark.asyncio
    async def test_state_mismatch(self):
        """Bad input: redirect with a foreign state is rejected"""
        context = StubPresentationContext(
            lambda r: AuthorizationResponse(code="auth-code", state="forged")
        )
        provider = GoogleAuthenticationProvider(client_id="c", presentation_context=context)

        with pytest.raises(AuthorizationFailed) as exc_info:
            await provider.credential()

        assert exc_info.value.error == "invalid_state"

    @pytest.mark.asyncio
    async def test_token_endpoint_failure(self, approving_context):
        """Bad input: non-200 token response raises AuthorizationFailed"""
        provider = GoogleAuthenticationProvider(
            client_id="c",
            presentation_context=approving_context,
            transport=token_transport({"error": "invalid_grant"}, status_code=400),
        )

        with pytest.raises(AuthorizationFailed) as exc_info:
            await provider.credential()

        assert exc_info.value.error == "token_exchange_failed"

    @pytest.mark.asyncio
    async def test_missing_id_token(self, approving_context):
        """Bad input: Google token response without an ID token raises MissingToken"""
        provider = GoogleAuthenticationProvider(
            client_id="c",
            presentation_context=approving_context,
            transport=token_transport({"access_token": "at"}),
        )

        with pytest.raises(MissingToken):
            await provider.credential()

    @pytest.mark.asyncio
    async def test_malformed_id_token(self, approving_context):
        """Bad input: undecodable ID token raises AuthorizationFailed"""
        provider = GoogleAuthenticationProvider(
            client_id="c",
            presentation_context=approving_context,
            transport=token_transport({"id_token": "not-a-jwt"}),
        )

        with pytest.raises(AuthorizationFailed) as exc_info:
            await provider.credential()

        assert exc_info.value.error == "invalid_id_token"


@pytest.mark.unit
class TestGoogleProvider:
    """Test Google credential construction"""

    @pytest.mark.asyncio
    async def test_credential_with_profile(self, approving_context):
        """Happy path: ID token claims populate email and name"""
        id_token = make_id_token(email="a@x.com", given_name="Ada", family_name="Lovelace")
        provider = GoogleAuthenticationProvider(
            client_id="c",
            presentation_context=approving_context,
            transport=token_transport({"id_token": id_token, "access_token": "at"}),
        )

        credential = await provider.credential()

        assert isinstance(credential, GoogleCredential)
        assert credential.to_backend_credential() == BackendCredential.for_idp(
            "google.com", id_token=id_token, access_token="at"
        )
        assert credential.user_data.email == "a@x.com"
        assert credential.user_data.full_name.formatted == "Ada Lovelace"

    def test_no_user_data_without_profile(self):
        """Edge case: credential without profile claims carries no user data"""
        assert GoogleCredential(id_token="idt").user_data is None

    def test_conversion_is_idempotent(self):
        """Happy path: converting twice yields equal handles"""
        credential = GoogleCredential(id_token="idt", access_token="at")

        assert credential.to_backend_credential() == credential.to_backend_credential()


@pytest.mark.unit
class TestAppleProvider:
    """Test Sign in with Apple specifics"""

    @pytest.mark.asyncio
    async def test_nonce_is_hashed_in_request(self, approving_context):
        """Happy path: authorization carries sha256(nonce), credential keeps the raw nonce"""
        provider = AppleAuthenticationProvider(
            client_id="com.example.service",
            client_secret="client-secret-jwt",
            presentation_context=approving_context,
            transport=token_transport({"id_token": make_id_token(email="a@x.com")}),
        )

        credential = await provider.credential()

        params = query_of(approving_context.requests[0].url)
        assert isinstance(credential, AppleCredential)
        assert params["nonce"] == sha256(credential.nonce)
        assert params["response_mode"] == "form_post"
        assert credential.auth_code == "auth-code"
        assert credential.to_backend_credential().raw_nonce == credential.nonce

    @pytest.mark.asyncio
    async def test_user_payload_supplies_name(self):
        """Happy path: first authorization user payload fills in the name"""
        user = json.dumps({"name": {"firstName": "Ada", "lastName": "Lovelace"}})
        context = StubPresentationContext(approve(user=user))
        provider = AppleAuthenticationProvider(
            client_id="c",
            presentation_context=context,
            transport=token_transport({"id_token": make_id_token(email="a@x.com")}),
        )

        credential = await provider.credential()

        assert credential.full_name == PersonName(given_name="Ada", family_name="Lovelace")
        assert credential.user_data.full_name.formatted == "Ada Lovelace"
        assert credential.user_data.email is None

    @pytest.mark.asyncio
    async def test_malformed_user_payload_is_ignored(self):
        """Edge case: unparsable user payload leaves the name empty"""
        context = StubPresentationContext(approve(user="{not json"))
        provider = AppleAuthenticationProvider(
            client_id="c",
            presentation_context=context,
            transport=token_transport({"id_token": make_id_token()}),
        )

        credential = await provider.credential()

        assert credential.full_name is None
        assert credential.user_data is None


@pytest.mark.unit
class TestFacebookProvider:
    """Test Facebook Login specifics"""

    @pytest.mark.asyncio
    async def test_access_token_credential(self, approving_context):
        """Happy path: access token response yields an access-token credential"""
        provider = FacebookAuthenticationProvider(
            client_id="fb-app",
            presentation_context=approving_context,
            transport=token_transport({"access_token": "fb-at"}),
        )

        credential = await provider.credential()

        params = query_of(approving_context.requests[0].url)
        assert params["return_scopes"] == "true"
        assert isinstance(credential, FacebookCredential)
        assert credential.token == FacebookToken(kind="access", value="fb-at")
        assert credential.to_backend_credential() == BackendCredential.for_idp(
            "facebook.com", access_token="fb-at"
        )

    def test_id_token_credential_carries_nonce(self):
        """Happy path: ID-token credentials convert with the raw nonce"""
        credential = FacebookCredential(token=FacebookToken(kind="id", value="idt"), nonce="n1")

        assert credential.to_backend_credential() == BackendCredential.for_idp(
            "facebook.com", id_token="idt", raw_nonce="n1"
        )

    @pytest.mark.asyncio
    async def test_declined_permission(self):
        """Bad input: declining a requested permission raises PermissionDeclined"""
        context = StubPresentationContext(approve(denied_scopes="email"))
        provider = FacebookAuthenticationProvider(
            client_id="fb-app",
            presentation_context=context,
            transport=token_transport({"access_token": "fb-at"}),
        )

        with pytest.raises(PermissionDeclined) as exc_info:
            await provider.credential()

        assert exc_info.value.permissions == frozenset({"email"})

    @pytest.mark.asyncio
    async def test_partial_grant(self):
        """Bad input: granted scopes missing a requested one raise PermissionDeclined"""
        context = StubPresentationContext(approve(granted_scopes="public_profile"))
        provider = FacebookAuthenticationProvider(
            client_id="fb-app",
            presentation_context=context,
            transport=token_transport({"access_token": "fb-at"}),
        )

        with pytest.raises(PermissionDeclined) as exc_info:
            await provider.credential()

        assert "email" in exc_info.value.permissions

    @pytest.mark.asyncio
    async def test_missing_token(self, approving_context):
        """Bad input: response without any token raises MissingToken"""
        provider = FacebookAuthenticationProvider(
            client_id="fb-app",
            presentation_context=approving_context,
            transport=token_transport({"token_type": "bearer"}),
        )

        with pytest.raises(MissingToken):
            await provider.credential()

    @pytest.mark.asyncio
    async def test_sign_in_failure_revokes_grant(self, approving_context):
        """Happy path: failed backend sign-in revokes the issued access token once"""
        requests = []
        provider = FacebookAuthenticationProvider(
            client_id="fb-app",
            presentation_context=approving_context,
            transport=token_transport({"access_token": "fb-at"}, requests=requests),
        )
        await provider.credential()

        await provider.sign_in_failed(RuntimeError("backend failure"))
        await provider.sign_in_failed(RuntimeError("backend failure"))

        revocations = [r for r in requests if r.method == "DELETE"]
        assert len(revocations) == 1
        assert revocations[0].url.params["access_token"] == "fb-at"

    @pytest.mark.asyncio
    async def test_revocation_failure_is_logged(self, approving_context, caplog):
        """Edge case: revocation HTTP failure is logged, not raised"""
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "DELETE":
                return httpx.Response(500, json={"error": "unavailable"})
            return httpx.Response(200, json={"access_token": "fb-at"})

        provider = FacebookAuthenticationProvider(
            client_id="fb-app",
            presentation_context=approving_context,
            transport=httpx.MockTransport(handler),
        )
        await provider.credential()

        await provider.sign_in_failed(RuntimeError("backend failure"))

        assert "token revocation failed" in caplog.text


@pytest.mark.unit
class TestTokenExchangeFailures:
    """Test typed errors for token endpoint failures"""

    @pytest.mark.asyncio
    async def test_unreachable_token_endpoint(self, approving_context):
        """Bad input: connection failure raises AuthorizationFailed"""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = GoogleAuthenticationProvider(
            client_id="c",
            presentation_context=approving_context,
            transport=httpx.MockTransport(handler),
        )

        with pytest.raises(AuthorizationFailed) as exc_info:
            await provider.credential()

        assert exc_info.value.error == "token_exchange_failed"
        assert isinstance(exc_info.value, IdentityBridgeError)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_non_json_token_response(self, approving_context):
        """Bad input: 200 response with a non-JSON body raises AuthorizationFailed"""
        provider = GoogleAuthenticationProvider(
            client_id="c",
            presentation_context=approving_context,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>")),
        )

        with pytest.raises(AuthorizationFailed) as exc_info:
            await provider.credential()

        assert exc_info.value.error == "token_exchange_failed"


@pytest.mark.unit
class TestIssuedTokenLifetime:
    """Test the issued access token is dropped once sign-in settles"""

    @pytest.mark.asyncio
    async def test_success_forgets_access_token(self, approving_context):
        """Happy path: after a successful sign-in a later failure revokes nothing"""
        requests = []
        provider = FacebookAuthenticationProvider(
            client_id="fb-app",
            presentation_context=approving_context,
            transport=token_transport({"access_token": "fb-at"}, requests=requests),
        )
        await provider.credential()

        await provider.sign_in_succeeded()
        await provider.sign_in_failed(RuntimeError("backend failure"))

        assert provider._issued_access_token is None
        assert [r for r in requests if r.method == "DELETE"] == []


@pytest.mark.unit
class TestGoogleNameClaims:
    """Test Google name claim mapping"""

    @pytest.mark.asyncio
    async def test_display_name_is_not_a_nickname(self, approving_context):
        """Edge case: the full-name claim is not stored as a nickname"""
        id_token = make_id_token(given_name="Ada", family_name="Lovelace", name="Ada Lovelace")
        provider = GoogleAuthenticationProvider(
            client_id="c",
            presentation_context=approving_context,
            transport=token_transport({"id_token": id_token}),
        )

        credential = await provider.credential()

        assert credential.full_name == PersonName(given_name="Ada", family_name="Lovelace")
        assert credential.full_name.nickname is None
        assert credential.full_name.formatted == "Ada Lovelace"
