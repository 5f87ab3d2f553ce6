"""
Key-value preference backends the token store persists through.
Each call is atomic on its own: put_many and delete_many never leave a partial update visible.
"""
import logging
import threading
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from oauth_client.models import Preference

logger = logging.getLogger(__name__)


class InMemoryPreferences:
    """Process-local store; used in tests and when nothing needs to survive a restart."""

    def __init__(self):
        self._values: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        with self._lock:
            return {k: self._values[k] for k in keys if k in self._values}

    def put_many(self, values: dict[str, str]) -> None:
        with self._lock:
            self._values.update(values)

    def delete_many(self, keys: Iterable[str]) -> None:
        with self._lock:
            for k in keys:
                self._values.pop(k, None)


class SqlPreferences:
    """Preferences in the `preferences` table; each call runs in its own transaction."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, key: str) -> str | None:
        return self.get_many([key]).get(key)

    def get_many(self, keys: Iterable[str]) -> dict[str, str]:
        keys = list(keys)
        db: Session = self._session_factory()
        try:
            rows = db.execute(select(Preference).where(Preference.key.in_(keys))).scalars().all()
            return {r.key: r.value for r in rows}
        finally:
            db.close()

    def put_many(self, values: dict[str, str]) -> None:
        db: Session = self._session_factory()
        try:
            for key, value in values.items():
                db.merge(Preference(key=key, value=value))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete_many(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        db: Session = self._session_factory()
        try:
            db.query(Preference).filter(Preference.key.in_(keys)).delete(synchronize_session=False)
            db.commit()
            logger.debug("Deleted %d preference key(s)", len(keys))
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
