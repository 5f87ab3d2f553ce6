"""
OAuth client configuration. Values come from the environment with safe defaults.
No secrets in this file; client ids and secrets come from env.
"""
import os

# Loopback endpoint the provider redirects to after consent
CALLBACK_HOST = os.environ.get("OAUTH_CALLBACK_HOST", "127.0.0.1")
CALLBACK_PORT = int(os.environ.get("OAUTH_CALLBACK_PORT", "6193"))

# How long Authorize waits for the browser redirect (seconds). Default 5 minutes.
AUTHORIZE_TIMEOUT = float(os.environ.get("OAUTH_AUTHORIZE_TIMEOUT", "300"))

# Access tokens expiring within this many seconds are refreshed first
EXPIRY_MARGIN_SECONDS = int(os.environ.get("OAUTH_EXPIRY_MARGIN", "60"))

# Timeout for calls to provider token endpoints (seconds)
HTTP_TIMEOUT = float(os.environ.get("OAUTH_HTTP_TIMEOUT", "10.0"))

# SQLite preference store for tokens
PREFS_DATABASE_URL = os.environ.get("OAUTH_PREFS_DATABASE_URL", "sqlite:///./oauth_tokens.db")

# Fernet key used to encrypt stored tokens. Generated on first use if missing.
TOKEN_KEY_PATH = os.environ.get("OAUTH_TOKEN_KEY_PATH", ".oauth_token_key")

# Provider application credentials
GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "")
# Installed apps cannot keep this secret; Google still requires it at the token endpoint
GOOGLE_CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET", "") or None
DROPBOX_CLIENT_ID = os.environ.get("DROPBOX_CLIENT_ID", "")
