"""
Calls to the provider token endpoint: authorization_code exchange and refresh_token grant.
Form-encoded POST, JSON response. Token values are never logged.
"""
import logging

import httpx

from oauth_client import config
from oauth_client.errors import (
    REASON_EXCHANGE_FAILED,
    AuthorizationError,
    CommunicationError,
    GrantRevoked,
    RefreshFailed,
)
from oauth_client.providers import ProviderDescriptor
from oauth_client.scopes import parse_scopes, require_scopes
from oauth_client.token_store import TokenRecord, expiry_from_now

logger = logging.getLogger(__name__)


def is_status_ok(status_code: int) -> bool:
    return 200 <= status_code < 300


def request_token(provider: ProviderDescriptor, form: dict[str, str], timeout: float | None = None):
    """POST form (plus client credentials) to the provider token endpoint and return the response."""
    data = {"client_id": provider.client_id, **form}
    if provider.client_secret:
        data["client_secret"] = provider.client_secret
    try:
        return httpx.post(
            provider.token_url,
            data=data,
            headers={"Accept": "application/json"},
            timeout=timeout or config.HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        raise CommunicationError(f"{provider.label} token endpoint unreachable: {e}") from e


def _json_body(r) -> dict:
    try:
        data = r.json()
    except ValueError as e:
        raise CommunicationError(f"Token endpoint returned non-JSON body (HTTP {r.status_code})") from e
    if not isinstance(data, dict):
        raise CommunicationError(f"Token endpoint returned unexpected JSON (HTTP {r.status_code})")
    return data


def _error_body(r) -> dict:
    """Parsed error JSON, or {} when the body is not a JSON object."""
    try:
        data = r.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _expires_in(payload: dict) -> int | None:
    value = payload.get("expires_in")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def exchange_code(
    provider: ProviderDescriptor,
    *,
    code: str,
    code_verifier: str,
    redirect_uri: str,
    granted_scopes: set[str] | None = None,
) -> TokenRecord:
    """
    Exchange an authorization code for tokens. Returns the complete record to store;
    raises AuthorizationError(exchange-failed) or InsufficientScope and writes nothing.
    """
    r = request_token(
        provider,
        {
            "code": code,
            "code_verifier": code_verifier,
            "grant_type": "authorization_code",
            # Must match the redirect_uri sent to the authorize endpoint
            "redirect_uri": redirect_uri,
        },
    )
    if not is_status_ok(r.status_code):
        err = _error_body(r)
        detail = err.get("error_description") or err.get("error") or r.text
        logger.warning("%s code exchange rejected: HTTP %s", provider.label, r.status_code)
        raise AuthorizationError(
            REASON_EXCHANGE_FAILED,
            f"{provider.label} token endpoint returned {r.status_code} ({detail})",
        )

    data = _json_body(r)
    access_token = data.get("access_token")
    expires_in = _expires_in(data)
    refresh_token = data.get("refresh_token")
    if not access_token or expires_in is None:
        raise AuthorizationError(
            REASON_EXCHANGE_FAILED,
            f"{provider.label} token response lacks access_token or expires_in",
        )
    if not refresh_token:
        raise AuthorizationError(REASON_EXCHANGE_FAILED, f"{provider.label} token response lacks refresh_token")

    # Token response scope is authoritative; fall back to what the redirect reported
    scopes = parse_scopes(data.get("scope")) if data.get("scope") else set(granted_scopes or ())
    if provider.required_scopes:
        require_scopes(provider.required_scopes, scopes)

    logger.info("%s code exchange succeeded (expires_in=%s)", provider.label, expires_in)
    return TokenRecord(
        access_token=access_token,
        expires_at=expiry_from_now(expires_in),
        refresh_token=refresh_token or None,
        scopes=frozenset(scopes),
    )


def refresh_access_token(provider: ProviderDescriptor, record: TokenRecord) -> TokenRecord:
    """
    Use the stored refresh token to get a new access token.
    Raises GrantRevoked when the provider says the grant is dead, RefreshFailed for other
    rejections, InsufficientScope if the new token lost required scopes.
    """
    r = request_token(
        provider,
        {"grant_type": "refresh_token", "refresh_token": record.refresh_token or ""},
    )
    if not is_status_ok(r.status_code):
        err = _error_body(r)
        if provider.is_grant_revoked(r.status_code, err):
            logger.warning(
                "%s refused to refresh the access token (%s); grant is revoked or expired",
                provider.label,
                err.get("error"),
            )
            raise GrantRevoked(
                f"{provider.label} refuses to refresh the access token; re-authorize this account"
            )
        logger.warning("%s token refresh failed: HTTP %s", provider.label, r.status_code)
        raise RefreshFailed(r.status_code, r.text)

    data = _json_body(r)
    access_token = data.get("access_token")
    expires_in = _expires_in(data)
    if not access_token or expires_in is None:
        raise CommunicationError(f"{provider.label} refresh response lacks access_token or expires_in")

    scopes = set(record.scopes)
    # Some providers (e.g. Dropbox) do not return scope on refresh
    if data.get("scope"):
        scopes = parse_scopes(data.get("scope"))
        if provider.required_scopes:
            require_scopes(provider.required_scopes, scopes)

    return TokenRecord(
        access_token=access_token,
        expires_at=expiry_from_now(expires_in),
        # Providers that rotate refresh tokens send a new one; otherwise keep ours
        refresh_token=data.get("refresh_token") or record.refresh_token,
        scopes=frozenset(scopes),
    )


def fetch_token_info(provider: ProviderDescriptor, access_token: str, timeout: float | None = None):
    """GET the provider token-info endpoint for access_token. Returns (status_code, json_dict)."""
    try:
        r = httpx.get(
            provider.tokeninfo_url,
            params={"access_token": access_token},
            headers={"Accept": "application/json"},
            timeout=timeout or config.HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        raise CommunicationError(f"{provider.label} token info unreachable: {e}") from e
    return r.status_code, _error_body(r)
