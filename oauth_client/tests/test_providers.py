"""Tests for provider descriptors, revocation rules and scope helpers."""
import pytest

from oauth_client import config
from oauth_client.errors import ConfigurationError, InsufficientScope
from oauth_client.providers import (
    GOOGLE_PROFILE_SCOPES,
    ProviderDescriptor,
    dropbox,
    get_provider,
    google_grant_revoked,
    google_photos,
    invalid_grant_revoked,
    list_providers,
    youtube,
)
from oauth_client.scopes import format_scopes, missing_scopes, parse_scopes, require_scopes


def _descriptor(**overrides) -> ProviderDescriptor:
    values = {
        "name": "example",
        "client_id": "cid",
        "authorize_url": "https://as.example/authorize",
        "token_url": "https://as.example/token",
        "revoke_url": "https://as.example/revoke",
    }
    values.update(overrides)
    return ProviderDescriptor(**values)


def test_descriptor_is_immutable():
    p = _descriptor(required_scopes={"a", "b"})
    assert p.required_scopes == frozenset({"a", "b"})
    with pytest.raises(AttributeError):
        p.client_id = "other"


def test_descriptor_requires_client_id():
    with pytest.raises(ConfigurationError):
        _descriptor(client_id="")


@pytest.mark.parametrize("url", ["", "not a url", "ftp://as.example/token"])
def test_descriptor_rejects_bad_token_url(url):
    with pytest.raises(ConfigurationError):
        _descriptor(token_url=url)


def test_descriptor_redirect_path_must_be_absolute():
    with pytest.raises(ConfigurationError):
        _descriptor(redirect_path="callback")


def test_redirect_uri():
    assert _descriptor(redirect_path="/cb").redirect_uri("127.0.0.1", 6193) == "http://127.0.0.1:6193/cb"


def test_google_photos_requires_profile_and_photos_scopes():
    p = google_photos()
    assert GOOGLE_PROFILE_SCOPES <= p.required_scopes
    assert "https://www.googleapis.com/auth/photoslibrary.appendonly" in p.required_scopes
    assert p.client_secret == config.GOOGLE_CLIENT_SECRET
    assert p.tokeninfo_url


def test_youtube_only_needs_upload_scope():
    assert youtube().required_scopes == frozenset({"https://www.googleapis.com/auth/youtube.upload"})


def test_dropbox_has_no_secret_no_scopes_and_offline_access():
    p = dropbox()
    assert p.client_secret is None
    assert p.required_scopes == frozenset()
    assert dict(p.extra_authorize_params) == {"token_access_type": "offline"}


def test_google_builder_reads_configured_client_id(monkeypatch):
    monkeypatch.setattr(config, "GOOGLE_CLIENT_ID", "")
    with pytest.raises(ConfigurationError):
        google_photos()


def test_get_provider_known_and_unknown():
    assert get_provider("dropbox").name == "dropbox"
    assert "google-drive" in list_providers()
    with pytest.raises(ConfigurationError):
        get_provider("myspace")


def test_google_revocation_needs_exact_description():
    assert google_grant_revoked(400, {"error": "invalid_grant", "error_description": "Token has been expired or revoked."})
    assert not google_grant_revoked(400, {"error": "invalid_grant", "error_description": "Bad Request"})
    assert not google_grant_revoked(401, {"error": "invalid_grant", "error_description": "Token has been expired or revoked."})


def test_generic_revocation_rule():
    assert invalid_grant_revoked(400, {"error": "invalid_grant"})
    assert not invalid_grant_revoked(400, {"error": "invalid_request"})
    assert not invalid_grant_revoked(500, {})


def test_parse_scopes():
    assert parse_scopes(None) == set()
    assert parse_scopes("a  b") == {"a", "b"}
    assert parse_scopes(["a", "b"]) == {"a", "b"}


def test_missing_scopes_and_require():
    assert missing_scopes({"a", "b", "c"}, {"b"}) == ["a", "c"]
    require_scopes({"a"}, {"a", "extra"})
    with pytest.raises(InsufficientScope) as exc:
        require_scopes({"a", "b"}, {"a"})
    assert exc.value.missing == ["b"]
    assert exc.value.reason == "insufficient-scope"


def test_format_scopes_is_sorted_and_space_joined():
    assert format_scopes({"b", "a"}) == "a b"
