"""
Symmetric key for encrypting tokens at rest (Fernet).
Load from file or generate and persist; no key material in code.
"""
import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet

logger = logging.getLogger(__name__)


def load_or_create_token_key(path: str | None) -> Fernet:
    """Load the Fernet key from path, or generate one and save it (owner-only permissions)."""
    if not path:
        path = ".oauth_token_key"
    p = Path(path)
    if p.exists():
        try:
            return Fernet(p.read_bytes().strip())
        except ValueError as e:
            # A replaced key makes stored tokens unreadable; they must be re-authorized
            logger.warning("Invalid token key in %s: %s; generating new key", path, e)
    key = Fernet.generate_key()
    try:
        p.write_bytes(key)
        os.chmod(p, 0o600)
        logger.info("Generated and saved token key to %s", path)
    except OSError as e:
        logger.warning("Could not save token key to %s: %s", path, e)
    return Fernet(key)


# Module-level state (loaded on first use)
_cipher: Fernet | None = None


def get_token_cipher() -> Fernet:
    global _cipher
    if _cipher is None:
        from oauth_client.config import TOKEN_KEY_PATH

        _cipher = load_or_create_token_key(TOKEN_KEY_PATH)
    return _cipher
