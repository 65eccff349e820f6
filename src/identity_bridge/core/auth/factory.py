"""Authentication provider and service factory.

Builds providers and the authentication service from settings.
"""

import logging
from typing import TYPE_CHECKING, Optional

from identity_bridge.config.settings import Settings, get_settings
from identity_bridge.core.auth.errors import ClientConfigurationMissing
from identity_bridge.core.auth.options import SignInOptions
from identity_bridge.core.auth.provider import AuthenticationProvider

if TYPE_CHECKING:
    from identity_bridge.domain.services.authentication_service import AuthenticationService

logger = logging.getLogger(__name__)

# Global service instance (initialized on first call)
_service_instance: Optional["AuthenticationService"] = None


def get_authentication_provider(
    name: str,
    settings: Optional[Settings] = None,
    **kwargs
) -> AuthenticationProvider:
    """Create a configured authentication provider.

    Supported names:
    - password: requires email and password keyword arguments
      (options optional)
    - google / apple / facebook: client credentials come from settings;
      keyword arguments are passed through to the provider

    Returns:
        AuthenticationProvider instance

    Raises:
        ValueError: If the provider name is unknown
    """
    settings = settings or get_settings()
    mode = name.lower()
    logger.debug(f"Creating authentication provider: {mode}")

    if mode == "password":
        from .password import PasswordAuthenticationProvider
        return PasswordAuthenticationProvider(
            email=kwargs["email"],
            password=kwargs["password"],
            options=kwargs.get("options", SignInOptions.NONE),
        )

    timeout = kwargs.pop("timeout", settings.request_timeout_seconds)

    if mode == "google":
        from .oauth import GoogleAuthenticationProvider
        return GoogleAuthenticationProvider(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            timeout=timeout,
            **kwargs
        )

    elif mode == "apple":
        from .oauth import AppleAuthenticationProvider
        return AppleAuthenticationProvider(
            client_id=settings.apple_client_id,
            client_secret=settings.apple_client_secret,
            timeout=timeout,
            **kwargs
        )

    elif mode == "facebook":
        from .oauth import FacebookAuthenticationProvider
        kwargs.setdefault("scopes", settings.facebook_permissions)
        return FacebookAuthenticationProvider(
            client_id=settings.facebook_client_id,
            client_secret=settings.facebook_client_secret,
            timeout=timeout,
            **kwargs
        )

    raise ValueError(
        f"Unknown authentication provider: {name}. "
        f"Valid options: password, google, apple, facebook"
    )


def get_authentication_service(settings: Optional[Settings] = None) -> "AuthenticationService":
    """Get the configured authentication service instance.

    The service is wired to the Identity Toolkit backend with a fresh
    session and the loopback browser flow as default presentation context.

    Returns:
        Configured AuthenticationService instance

    Raises:
        ClientConfigurationMissing: If IDENTITY_API_KEY is not set
    """
    global _service_instance

    # Return cached instance
    if _service_instance is not None:
        return _service_instance

    from identity_bridge.domain.services.authentication_service import AuthenticationService
    from identity_bridge.infrastructure.backend import AuthSession, IdentityToolkitBackend
    from identity_bridge.infrastructure.presentation.loopback import LoopbackPresentationContext

    settings = settings or get_settings()
    if not settings.identity_api_key:
        raise ClientConfigurationMissing("Identity backend requires IDENTITY_API_KEY")

    session = AuthSession()
    backend = IdentityToolkitBackend(
        api_key=settings.identity_api_key,
        session=session,
        base_url=settings.identity_toolkit_url,
        secure_token_url=settings.secure_token_url,
        timeout=settings.request_timeout_seconds,
    )

    def default_presentation_context() -> LoopbackPresentationContext:
        return LoopbackPresentationContext(
            host=settings.oauth_redirect_host,
            port=settings.oauth_redirect_port,
        )

    _service_instance = AuthenticationService(
        backend=backend,
        session=session,
        default_presentation_context=default_presentation_context,
    )
    logger.info(f"Authentication service initialized ({settings.environment})")
    return _service_instance


def reset_service() -> None:
    """Reset the global service instance (for testing)."""
    global _service_instance
    _service_instance = None
