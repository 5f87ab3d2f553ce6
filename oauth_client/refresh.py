"""
Token refresh manager: hands out valid access tokens, refreshing them when they are
about to expire. Refreshes are serialized per (provider, account) so a second caller
reuses the first caller's new token instead of spending the refresh token again.
"""
import logging
import threading

from oauth_client import config
from oauth_client.errors import (
    REASON_TOKEN_REJECTED,
    AuthorizationError,
    CommunicationError,
    GrantRevoked,
    InsufficientScope,
    NotAuthorized,
)
from oauth_client.providers import ProviderDescriptor
from oauth_client.scopes import missing_scopes, parse_scopes
from oauth_client.token_endpoint import fetch_token_info, is_status_ok, refresh_access_token
from oauth_client.token_store import TokenRecord, TokenStore, utc_now

logger = logging.getLogger(__name__)


class TokenManager:
    def __init__(self, store: TokenStore, margin_seconds: int | None = None):
        self._store = store
        self.margin_seconds = config.EXPIRY_MARGIN_SECONDS if margin_seconds is None else margin_seconds
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._locks_lock = threading.Lock()

    def _lock_for(self, provider: ProviderDescriptor, account: str) -> threading.Lock:
        key = (provider.name, account)
        with self._locks_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def get_access_token(self, provider: ProviderDescriptor, account: str) -> str:
        """
        Return a usable access token for the account, refreshing it if it expires within the margin.
        Raises NotAuthorized, GrantRevoked (tokens cleared), RefreshFailed (tokens kept),
        InsufficientScope or CommunicationError.
        """
        return self._valid_record(provider, account).access_token

    def _valid_record(self, provider: ProviderDescriptor, account: str) -> TokenRecord:
        with self._lock_for(provider, account):
            # Re-read under the lock: a concurrent caller may have just refreshed
            record = self._store.get(provider.name, account)
            if record is None:
                raise NotAuthorized(f"No {provider.label} authorization found for account {account}")
            if record.is_fresh(self.margin_seconds, utc_now()):
                return record
            if not record.refresh_token:
                raise NotAuthorized(
                    f"{provider.label} access token expired and no refresh token is stored; re-authorize {account}"
                )

            logger.info("Refreshing %s access token for account %s", provider.label, account)
            try:
                new_record = refresh_access_token(provider, record)
            except GrantRevoked:
                # Forget the dead grant so the next call reports NotAuthorized without a doomed refresh
                self._store.clear(provider.name, account)
                raise
            self._store.set(provider.name, account, new_record)
            return new_record

    def check_authorizations(self, provider: ProviderDescriptor, account: str) -> set[str]:
        """
        Ask the provider which scopes the current access token really carries.
        Clears stored tokens when the provider reports an error or no scope at all.
        Returns the granted scopes. Providers without a token-info endpoint only get a token check.
        """
        record = self._valid_record(provider, account)
        if not provider.tokeninfo_url:
            return set(record.scopes)

        status_code, body = fetch_token_info(provider, record.access_token)
        if status_code >= 500:
            raise CommunicationError(f"{provider.label} token info failed: HTTP {status_code}")
        error = body.get("error") or body.get("error_description")
        if error or not is_status_ok(status_code):
            self._store.clear(provider.name, account)
            raise GrantRevoked(f"{provider.label} rejected the stored token ({error or status_code}); please re-authorize")

        granted = parse_scopes(body.get("scope"))
        if not granted:
            self._store.clear(provider.name, account)
            raise AuthorizationError(REASON_TOKEN_REJECTED, "No scope is defined for this token; please re-authorize")
        missing = missing_scopes(provider.required_scopes, granted)
        if missing:
            raise InsufficientScope(missing)
        return granted

    def forget(self, provider: ProviderDescriptor, account: str) -> None:
        """Drop the account's tokens (account removed by the user) and its refresh lock."""
        key = (provider.name, account)
        with self._lock_for(provider, account):
            self._store.clear(provider.name, account)
            with self._locks_lock:
                self._locks.pop(key, None)
