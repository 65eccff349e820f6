"""Nonce and PKCE helpers for OAuth flows."""

import base64
import hashlib
import secrets

# Subset of the RFC 7636 unreserved characters, valid in nonces and PKCE verifiers
NONCE_CHARSET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-._"


def random_nonce_string(length: int = 32) -> str:
    """Generate a cryptographically random nonce string."""
    if length <= 0:
        raise ValueError("Nonce length must be positive")
    return "".join(secrets.choice(NONCE_CHARSET) for _ in range(length))


def sha256(text: str) -> str:
    """Hex-encoded SHA-256 digest of a string."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def code_challenge(verifier: str) -> str:
    """PKCE S256 code challenge for a code verifier (RFC 7636)."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
