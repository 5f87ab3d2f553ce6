"""
Provider descriptors: static OAuth2 configuration per provider family.
Behavioral differences (no client secret, no scopes, revocation detection) are data on
the descriptor rather than subclasses.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from oauth_client import config
from oauth_client.errors import ConfigurationError

logger = logging.getLogger(__name__)

# (http_status, parsed_error_body) -> True when the refresh grant itself is dead
GrantRevokedRule = Callable[[int, dict], bool]


def invalid_grant_revoked(status_code: int, body: dict) -> bool:
    """Generic OAuth2 rule (RFC 6749 §5.2): 400 with error=invalid_grant."""
    return status_code == 400 and body.get("error") == "invalid_grant"


def google_grant_revoked(status_code: int, body: dict) -> bool:
    """
    Google answers 400 invalid_grant for several causes; only the expired/revoked
    description means the stored refresh token is permanently unusable.
    """
    return (
        status_code == 400
        and body.get("error") == "invalid_grant"
        and body.get("error_description") == "Token has been expired or revoked."
    )


@dataclass(frozen=True)
class ProviderDescriptor:
    name: str
    client_id: str
    authorize_url: str
    token_url: str
    revoke_url: str
    required_scopes: frozenset[str] = frozenset()
    client_secret: str | None = None
    redirect_path: str = "/"
    extra_authorize_params: tuple[tuple[str, str], ...] = ()
    tokeninfo_url: str | None = None
    display_name: str = ""
    grant_revoked: GrantRevokedRule = field(default=invalid_grant_revoked, compare=False)

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Provider name is required")
        if not self.client_id:
            raise ConfigurationError(f"Provider {self.name}: client_id is not configured")
        for attr in ("authorize_url", "token_url"):
            value = getattr(self, attr)
            parts = urlsplit(value or "")
            if parts.scheme not in ("http", "https") or not parts.netloc:
                raise ConfigurationError(f"Provider {self.name}: invalid {attr} {value!r}")
        if not self.redirect_path.startswith("/"):
            raise ConfigurationError(f"Provider {self.name}: redirect_path must start with '/'")
        if not isinstance(self.required_scopes, frozenset):
            object.__setattr__(self, "required_scopes", frozenset(self.required_scopes))

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def redirect_uri(self, host: str, port: int) -> str:
        return f"http://{host}:{port}{self.redirect_path}"

    def is_grant_revoked(self, status_code: int, body: dict) -> bool:
        return self.grant_revoked(status_code, body)


GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://myaccount.google.com/permissions"
GOOGLE_TOKENINFO_URL = "https://www.googleapis.com/oauth2/v3/tokeninfo"
# Needed to show the account's name and email
GOOGLE_PROFILE_SCOPES = frozenset(
    {
        "https://www.googleapis.com/auth/userinfo.profile",
        "https://www.googleapis.com/auth/userinfo.email",
    }
)

DROPBOX_AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"
DROPBOX_TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"
DROPBOX_REVOKE_URL = "https://www.dropbox.com/account/connected_apps"


def _google(name: str, display_name: str, scopes: frozenset[str]) -> ProviderDescriptor:
    return ProviderDescriptor(
        name=name,
        display_name=display_name,
        client_id=config.GOOGLE_CLIENT_ID,
        client_secret=config.GOOGLE_CLIENT_SECRET,
        authorize_url=GOOGLE_AUTHORIZE_URL,
        token_url=GOOGLE_TOKEN_URL,
        revoke_url=GOOGLE_REVOKE_URL,
        tokeninfo_url=GOOGLE_TOKENINFO_URL,
        required_scopes=scopes,
        redirect_path=f"/{name}",
        grant_revoked=google_grant_revoked,
    )


def google_photos() -> ProviderDescriptor:
    return _google(
        "google-photos",
        "Google Photos",
        GOOGLE_PROFILE_SCOPES
        | {
            "https://www.googleapis.com/auth/photoslibrary.appendonly",
            "https://www.googleapis.com/auth/photoslibrary.readonly.appcreateddata",
            "https://www.googleapis.com/auth/photoslibrary.sharing",
        },
    )


def google_drive() -> ProviderDescriptor:
    return _google("google-drive", "Google Drive", GOOGLE_PROFILE_SCOPES | {"https://www.googleapis.com/auth/drive"})


def youtube() -> ProviderDescriptor:
    return _google("youtube", "YouTube", frozenset({"https://www.googleapis.com/auth/youtube.upload"}))


def dropbox() -> ProviderDescriptor:
    # No scopes: permissions are defined on the app registration. No client secret (PKCE only).
    return ProviderDescriptor(
        name="dropbox",
        display_name="Dropbox",
        client_id=config.DROPBOX_CLIENT_ID,
        authorize_url=DROPBOX_AUTHORIZE_URL,
        token_url=DROPBOX_TOKEN_URL,
        revoke_url=DROPBOX_REVOKE_URL,
        redirect_path="/dropbox",
        # Short-lived access token plus a refresh token
        extra_authorize_params=(("token_access_type", "offline"),),
    )


PROVIDERS: dict[str, Callable[[], ProviderDescriptor]] = {
    "google-photos": google_photos,
    "google-drive": google_drive,
    "youtube": youtube,
    "dropbox": dropbox,
}


def list_providers() -> list[str]:
    return sorted(PROVIDERS)


def get_provider(name: str) -> ProviderDescriptor:
    """Build the descriptor for a known provider. Raises ConfigurationError if unknown or unconfigured."""
    builder = PROVIDERS.get(name)
    if builder is None:
        raise ConfigurationError(f"Unknown provider {name!r}; known: {', '.join(list_providers())}")
    return builder()
