"""
Database engine and session management for the portfolio tracker.
Kept apart from the models and repositories to avoid circular imports.

SQLite (the default) is opened with check_same_thread disabled, because the
FX rate writer and the price fan-out run on worker threads, and switched to
WAL journaling. Other URLs are passed to SQLAlchemy as-is.
"""

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine
from typing import Optional
import logging

from config import get_settings

logger = logging.getLogger(__name__)

# Global engine instance
_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Get or create the database engine for settings.database_url."""
    global _engine
    if _engine is None:
        settings = get_settings()
        if settings.is_sqlite:
            _engine = create_engine(
                settings.database_url,
                echo=settings.db_echo,
                connect_args={"check_same_thread": False}
            )
            _configure_sqlite(_engine)
        else:
            _engine = create_engine(settings.database_url, echo=settings.db_echo, pool_pre_ping=True)
        logger.info(f"Database engine created for {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def set_engine(engine: Optional[Engine]) -> Optional[Engine]:
    """
    Replace the global engine (e.g. with an in-memory database in tests).

    Returns:
        The engine that was active before
    """
    global _engine
    previous = _engine
    _engine = engine
    return previous


def _configure_sqlite(engine: Engine):
    """Turn on WAL journaling and a busy timeout for a file-backed SQLite database."""
    try:
        with engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql("PRAGMA busy_timeout=5000")
            logger.info("SQLite WAL mode enabled for concurrent access")
    except Exception as e:
        logger.warning(f"Could not enable WAL mode: {e}")


def init_db(engine: Optional[Engine] = None):
    """Create the transaction, exchange rate and analysis tables if missing."""
    from models import Transaction, ExchangeRate, Analysis  # noqa: F401

    SQLModel.metadata.create_all(engine or get_engine())
    logger.info("Database initialized")


def get_session() -> Session:
    """Get a new session on the global engine."""
    return Session(get_engine())
