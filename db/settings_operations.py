"""
Database operations for live operator settings.

Settings are stored as text and read on every use, so a change made
through the API takes effect for the next detected file or draft.
"""

import json
import logging
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.database import session_scope
from db.models import Setting

logger = logging.getLogger(__name__)

# Listing template defaults for the catalog and the watcher toggle
DEFAULT_SETTINGS = {
    "blueprint_id": "145",
    "print_provider_id": "99",
    "default_price": "1999",
    "variant_ids": "[]",
    "auto_process": "true",
}

TRUE_VALUES = {"true", "1", "yes", "on"}


class SettingsRepository:
    """
    Repository for Setting key/value operations.

    Can be used with a provided session or create its own.
    """

    def __init__(self, session: Session | None = None):
        self._session = session

    def seed_defaults(self) -> int:
        """
        Insert any default setting that is not present yet.

        Returns:
            Number of settings inserted.
        """
        inserted = 0
        with self._scope() as session:
            existing = set(session.execute(select(Setting.key)).scalars().all())
            for key, value in DEFAULT_SETTINGS.items():
                if key not in existing:
                    session.add(Setting(key=key, value=value))
                    inserted += 1

        if inserted:
            logger.info(f"Seeded {inserted} default setting(s)")
        return inserted

    def get(self, key: str, default: str | None = None) -> str | None:
        """Get a raw setting value."""
        with self._scope() as session:
            setting = session.get(Setting, key)
            return setting.value if setting else default

    def set(self, key: str, value: Any) -> None:
        """
        Insert or update a setting.

        Lists and dicts are stored as JSON, booleans as "true"/"false",
        everything else via str().
        """
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (list, dict)):
            value = json.dumps(value)
        else:
            value = str(value)

        with self._scope() as session:
            setting = session.get(Setting, key)
            if setting:
                setting.value = value
            else:
                session.add(Setting(key=key, value=value))

        logger.debug(f"Setting updated: {key}={value}")

    def get_all(self) -> dict[str, str]:
        """Get every setting as a key -> value dictionary."""
        with self._scope() as session:
            rows = session.execute(select(Setting)).scalars().all()
            return {row.key: row.value for row in rows}

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None:
            return default
        return value.strip().lower() in TRUE_VALUES

    def get_int(self, key: str, default: int) -> int:
        value = self.get(key)
        if value is None or not value.strip():
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning(f"Setting {key}={value!r} is not an integer, using {default}")
            return default

    def get_json(self, key: str, default: Any = None) -> Any:
        value = self.get(key)
        if value is None or not value.strip():
            return default
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            logger.warning(f"Setting {key}={value!r} is not valid JSON, using default")
            return default

    def auto_process_enabled(self) -> bool:
        """Live read of the watcher's auto-process toggle."""
        return self.get_bool("auto_process", default=True)

    def _scope(self):
        if self._session:
            return _borrowed(self._session)
        return session_scope()


@contextmanager
def _borrowed(session: Session) -> Generator[Session, None, None]:
    """Yield a caller-owned session, flushing instead of committing."""
    yield session
    session.flush()
