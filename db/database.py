"""
Database connection and session management for the design draft pipeline.

Provides:
- One lazily created engine per process (SQLite by default)
- Short-lived sessions through session_scope()
- Table creation and a connectivity check for the CLIs
"""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from db.models import Base

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///data/design_drafts.db"

# ────────────────────────────────────────────────────────────────────────────────
# Configuration
# ────────────────────────────────────────────────────────────────────────────────

def get_database_url() -> str:
    """DATABASE_URL, or a SQLite file under ./data."""
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def is_sqlite(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def get_engine_settings(database_url: str) -> dict:
    """
    Keyword arguments for create_engine().

    Worker threads share the SQLite file, so connections may cross
    threads and wait on locks; other backends get a pre-pinged pool
    sized from DB_POOL_SIZE / DB_MAX_OVERFLOW.
    """
    if is_sqlite(database_url):
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}

    return {
        "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
        "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


def _prepare_sqlite(engine: Engine) -> None:
    database = engine.url.database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    @event.listens_for(engine, "connect")
    def _set_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ────────────────────────────────────────────────────────────────────────────────
# Engine and sessions
# ────────────────────────────────────────────────────────────────────────────────

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine

    if _engine is None:
        database_url = get_database_url()
        engine = create_engine(database_url, echo=False, **get_engine_settings(database_url))
        if is_sqlite(database_url):
            _prepare_sqlite(engine)

        _engine = engine
        logger.info(f"Database engine created ({engine.url.get_backend_name()})")

    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory

    if _session_factory is None:
        # Rows returned by repositories stay readable after the session closes
        _session_factory = sessionmaker(bind=get_engine(), expire_on_commit=False)

    return _session_factory


def get_session() -> Session:
    """
    Open a new session. The caller must close it.

    Prefer session_scope(), which commits and closes for you.
    """
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Commits when the block exits normally, rolls back and re-raises on
    any exception, and always closes the session.

    Example:
        with session_scope() as session:
            session.get(Item, item_id).status = ItemStatus.COMPLETED
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Session rollback due to: {e}")
        raise
    finally:
        session.close()


# ────────────────────────────────────────────────────────────────────────────────
# Setup and checks
# ────────────────────────────────────────────────────────────────────────────────

def init_db() -> bool:
    """
    Create any missing tables.

    Returns:
        True if successful, False otherwise.
    """
    try:
        Base.metadata.create_all(get_engine())
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return False

    logger.info("Database tables are ready")
    return True


def verify_connection() -> bool:
    """Run SELECT 1 against the configured database."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False

    logger.info("Database connection verified")
    return True


def get_db_info() -> dict:
    """Connection details for display, password masked."""
    url = make_url(get_database_url())
    return {
        "backend": url.get_backend_name(),
        "url": url.render_as_string(hide_password=True),
        "database": url.database,
    }


def dispose_engine() -> None:
    """Close all pooled connections and forget the engine."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine disposed")
