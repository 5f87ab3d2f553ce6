"""
PKCE (RFC 7636) helpers and authorize URL building for the installed-app flow.
S256 only. Verifier and challenge are unpadded base64url.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from urllib.parse import quote, urlencode

from oauth_client.errors import CryptoUnavailable

# 32 random bytes -> 43 chars base64url (RFC 7636 recommendation)
VERIFIER_BYTES = 32


def _b64url(data: bytes) -> str:
    return urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_verifier(num_bytes: int = VERIFIER_BYTES) -> str:
    """Random code_verifier: base64url of num_bytes (>= 32) secure random bytes, no padding."""
    if num_bytes < VERIFIER_BYTES:
        raise ValueError(f"verifier needs at least {VERIFIER_BYTES} random bytes")
    try:
        raw = secrets.token_bytes(num_bytes)
    except NotImplementedError as e:
        raise CryptoUnavailable("No secure random source available") from e
    return _b64url(raw)


def derive_challenge(verifier: str) -> str:
    """
    S256 code_challenge: base64url(SHA256(ascii(verifier))) without '=' padding.
    A non-ASCII verifier raises UnicodeEncodeError.
    """
    data = verifier.encode("ascii")
    try:
        digest = hashlib.sha256(data).digest()
    except ValueError as e:
        # hashlib raises ValueError when the digest is disabled (e.g. restricted builds)
        raise CryptoUnavailable("SHA-256 is not available") from e
    return _b64url(digest)


def generate_pkce() -> tuple[str, str]:
    """Return (code_verifier, code_challenge)."""
    verifier = generate_verifier()
    return verifier, derive_challenge(verifier)


def build_authorize_url(
    *,
    authorize_url: str,
    client_id: str,
    redirect_uri: str,
    code_challenge: str,
    scope: str | None = None,
    extra_params: dict[str, str] | None = None,
) -> str:
    """Build the provider authorize URL opened in the user's browser."""
    params = {
        "client_id": client_id,
        "response_type": "code",
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if scope:
        params["scope"] = scope
    if extra_params:
        params.update(extra_params)
    params["redirect_uri"] = redirect_uri
    sep = "&" if "?" in authorize_url else "?"
    return f"{authorize_url}{sep}{urlencode(params, quote_via=quote)}"
