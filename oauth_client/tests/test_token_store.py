"""Tests for the token store, expiry policy and preference backends."""
from datetime import datetime, timedelta, timezone

import pytest
from cryptography.fernet import Fernet
from sqlalchemy.pool import StaticPool

from oauth_client.database import SessionLocal, _engine_options, init_db
from oauth_client.errors import ConfigurationError
from oauth_client.keys import load_or_create_token_key
from oauth_client.preferences import InMemoryPreferences, SqlPreferences
from oauth_client.token_store import (
    TokenRecord,
    TokenStore,
    expiry_from_now,
    format_expiry,
    parse_expiry,
    utc_now,
)


def _record(**overrides) -> TokenRecord:
    values = {
        "access_token": "at",
        "refresh_token": "rt",
        "expires_at": utc_now().replace(microsecond=0) + timedelta(hours=1),
        "scopes": frozenset({"photos", "profile"}),
    }
    values.update(overrides)
    return TokenRecord(**values)


@pytest.fixture
def prefs():
    return InMemoryPreferences()


@pytest.fixture
def store(prefs):
    return TokenStore(prefs)


def test_get_missing_returns_none(store):
    assert store.get("google-photos", "nobody") is None


def test_set_then_get(store):
    rec = _record()
    store.set("google-photos", "me", rec)
    assert store.get("google-photos", "me") == rec


def test_records_are_per_provider_and_account(store):
    store.set("google-photos", "me", _record(access_token="a1"))
    store.set("dropbox", "me", _record(access_token="a2"))
    store.set("google-photos", "other", _record(access_token="a3"))
    assert store.get("google-photos", "me").access_token == "a1"
    assert store.get("dropbox", "me").access_token == "a2"
    assert store.get("google-photos", "other").access_token == "a3"


def test_clear_removes_every_field(store, prefs):
    store.set("dropbox", "me", _record())
    store.clear("dropbox", "me")
    assert store.get("dropbox", "me") is None
    assert prefs.get_many(
        [f"dropbox.me.{f}" for f in ("access_token", "refresh_token", "expires_at", "scope")]
    ) == {}


def test_clear_leaves_other_accounts(store):
    store.set("dropbox", "me", _record())
    store.set("dropbox", "you", _record(access_token="yours"))
    store.clear("dropbox", "me")
    assert store.get("dropbox", "you").access_token == "yours"


def test_record_without_refresh_token_replaces_old_refresh_token(store):
    store.set("dropbox", "me", _record(refresh_token="old-rt"))
    store.set("dropbox", "me", _record(refresh_token=None))
    assert store.get("dropbox", "me").refresh_token is None


def test_incomplete_record_is_not_found(store, prefs):
    prefs.put_many({"dropbox.me.access_token": "at"})
    assert store.get("dropbox", "me") is None


def test_expiry_is_stored_as_lexically_comparable_utc_string(prefs, store):
    store.set("dropbox", "me", _record(expires_at=datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)))
    assert prefs.get("dropbox.me.expires_at") == "2030-01-02T03:04:05Z"
    assert format_expiry(datetime(2030, 1, 2, tzinfo=timezone.utc)) < format_expiry(datetime(2030, 1, 10, tzinfo=timezone.utc))


def test_parse_expiry_round_trip():
    dt = datetime(2031, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
    assert parse_expiry(format_expiry(dt)) == dt


def test_expiry_from_now():
    now = datetime(2030, 1, 1, tzinfo=timezone.utc)
    assert expiry_from_now(3599, now) == datetime(2030, 1, 1, 0, 59, 59, tzinfo=timezone.utc)


def test_fresh_token_within_lifetime():
    """Token valid for an hour: no refresh needed with a 60s margin."""
    now = utc_now()
    assert _record(expires_at=now + timedelta(hours=1)).is_fresh(60, now) is True


def test_token_within_margin_needs_refresh():
    """50s left with a 60s margin: refresh."""
    now = utc_now()
    assert _record(expires_at=now + timedelta(seconds=50)).is_fresh(60, now) is False


def test_expired_token_needs_refresh():
    now = utc_now()
    assert _record(expires_at=now - timedelta(seconds=1)).is_fresh(60, now) is False


def test_encrypted_values_are_not_stored_in_clear(prefs):
    store = TokenStore(prefs, cipher=Fernet(Fernet.generate_key()))
    store.set("google-drive", "me", _record(access_token="secret-at", refresh_token="secret-rt"))
    assert prefs.get("google-drive.me.access_token") != "secret-at"
    assert prefs.get("google-drive.me.refresh_token") != "secret-rt"
    rec = store.get("google-drive", "me")
    assert rec.access_token == "secret-at"
    assert rec.refresh_token == "secret-rt"


def test_tokens_unreadable_with_another_key(prefs):
    TokenStore(prefs, cipher=Fernet(Fernet.generate_key())).set("google-drive", "me", _record())
    with pytest.raises(ConfigurationError):
        TokenStore(prefs, cipher=Fernet(Fernet.generate_key())).get("google-drive", "me")


def test_load_or_create_token_key_persists(tmp_path):
    path = tmp_path / "key"
    first = load_or_create_token_key(str(path))
    token = first.encrypt(b"x")
    assert path.exists()
    assert load_or_create_token_key(str(path)).decrypt(token) == b"x"


def test_sql_preferences_round_trip():
    init_db()
    store = TokenStore(SqlPreferences(SessionLocal))
    rec = _record(access_token="sql-at")
    store.set("youtube", "sql-user", rec)
    assert store.get("youtube", "sql-user") == rec
    store.set("youtube", "sql-user", _record(access_token="sql-at-2"))
    assert store.get("youtube", "sql-user").access_token == "sql-at-2"
    store.clear("youtube", "sql-user")
    assert store.get("youtube", "sql-user") is None


def test_engine_options_per_database_url():
    assert _engine_options("sqlite:///:memory:")["poolclass"] is StaticPool
    file_opts = _engine_options("sqlite:///./oauth_tokens.db")
    assert file_opts == {"connect_args": {"check_same_thread": False}}
    assert _engine_options("postgresql://db/prefs") == {}
