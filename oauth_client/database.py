"""
Engine and session factory behind SqlPreferences. SQLite file by default.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from oauth_client.config import PREFS_DATABASE_URL
from oauth_client.models import Base


def _engine_options(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    # Refreshes and the callback thread use the store from different threads
    options = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url:
        # One shared connection, or every session would see its own empty database
        options["poolclass"] = StaticPool
    return options


engine = create_engine(PREFS_DATABASE_URL, **_engine_options(PREFS_DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create the preferences table if missing."""
    Base.metadata.create_all(bind=engine)
