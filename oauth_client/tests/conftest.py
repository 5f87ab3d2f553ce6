"""
Pytest configuration for oauth_client. In-memory SQLite and a throwaway token key so tests
don't touch the working directory; provider client ids so builders can be exercised.
"""
import os
import tempfile

# In-memory SQLite; database.py shares one StaticPool connection across sessions
os.environ["OAUTH_PREFS_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["OAUTH_TOKEN_KEY_PATH"] = os.path.join(tempfile.mkdtemp(prefix="oauth-test-"), "token.key")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-secret")
os.environ.setdefault("DROPBOX_CLIENT_ID", "test-dropbox-client")
