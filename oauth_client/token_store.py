"""
Per-(provider, account) token records persisted through a key-value preference backend.
Stores access_token, refresh_token (optional), expires_at (UTC, lexically comparable) and granted scope.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet, InvalidToken

from oauth_client.errors import ConfigurationError
from oauth_client.scopes import format_scopes, parse_scopes

logger = logging.getLogger(__name__)

EXPIRY_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_ACCESS_TOKEN = "access_token"
_REFRESH_TOKEN = "refresh_token"
_EXPIRES_AT = "expires_at"
_SCOPE = "scope"
_FIELDS = (_ACCESS_TOKEN, _REFRESH_TOKEN, _EXPIRES_AT, _SCOPE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_expiry(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(EXPIRY_FORMAT)


def parse_expiry(value: str) -> datetime:
    return datetime.strptime(value, EXPIRY_FORMAT).replace(tzinfo=timezone.utc)


def expiry_from_now(expires_in: int | float, now: datetime | None = None) -> datetime:
    return (now or utc_now()) + timedelta(seconds=int(expires_in))


@dataclass(frozen=True)
class TokenRecord:
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None
    scopes: frozenset[str] = field(default_factory=frozenset)

    def is_fresh(self, margin_seconds: int, now: datetime | None = None) -> bool:
        """True while now + margin is still before expiry; otherwise a refresh is due."""
        return (now or utc_now()) + timedelta(seconds=margin_seconds) < self.expires_at


class TokenStore:
    def __init__(self, preferences, cipher: Fernet | None = None):
        self._prefs = preferences
        self._cipher = cipher

    @staticmethod
    def _key(provider: str, account: str, name: str) -> str:
        return f"{provider}.{account}.{name}"

    def _keys(self, provider: str, account: str) -> dict[str, str]:
        return {name: self._key(provider, account, name) for name in _FIELDS}

    def _encrypt(self, value: str) -> str:
        if self._cipher is None:
            return value
        return self._cipher.encrypt(value.encode("utf-8")).decode("ascii")

    def _decrypt(self, value: str) -> str:
        if self._cipher is None:
            return value
        try:
            return self._cipher.decrypt(value.encode("ascii")).decode("utf-8")
        except InvalidToken as e:
            raise ConfigurationError("Stored tokens cannot be decrypted with the current token key") from e

    def get(self, provider: str, account: str) -> TokenRecord | None:
        """Return the stored record, or None when absent or incomplete."""
        keys = self._keys(provider, account)
        values = self._prefs.get_many(keys.values())
        access = values.get(keys[_ACCESS_TOKEN])
        expires = values.get(keys[_EXPIRES_AT])
        if not access or not expires:
            return None
        refresh = values.get(keys[_REFRESH_TOKEN])
        return TokenRecord(
            access_token=self._decrypt(access),
            expires_at=parse_expiry(expires),
            refresh_token=self._decrypt(refresh) if refresh else None,
            scopes=frozenset(parse_scopes(values.get(keys[_SCOPE]))),
        )

    def set(self, provider: str, account: str, record: TokenRecord) -> None:
        """Write the whole record in one backend call."""
        keys = self._keys(provider, account)
        values = {
            keys[_ACCESS_TOKEN]: self._encrypt(record.access_token),
            keys[_EXPIRES_AT]: format_expiry(record.expires_at),
            keys[_SCOPE]: format_scopes(record.scopes),
            # Empty value rather than a missing key, so an older refresh token is overwritten in the same call
            keys[_REFRESH_TOKEN]: self._encrypt(record.refresh_token) if record.refresh_token else "",
        }
        self._prefs.put_many(values)
        logger.debug("Stored tokens for %s/%s (expires %s)", provider, account, values[keys[_EXPIRES_AT]])

    def clear(self, provider: str, account: str) -> None:
        """Remove access token, refresh token, expiry and scope together."""
        self._prefs.delete_many(self._keys(provider, account).values())
        logger.info("Cleared stored tokens for %s/%s", provider, account)


def default_token_store() -> TokenStore:
    """SQL-backed store with encrypted token values, configured from oauth_client.config."""
    from oauth_client.database import SessionLocal, init_db
    from oauth_client.keys import get_token_cipher
    from oauth_client.preferences import SqlPreferences

    init_db()
    return TokenStore(SqlPreferences(SessionLocal), cipher=get_token_cipher())
