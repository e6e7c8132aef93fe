"""Database connection and session management."""

import logging
import time
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Owns the SQLAlchemy engine and hands out transactional sessions.

    ``get_session()`` commits when the block exits cleanly and rolls back
    on any exception, so callers never manage transactions by hand.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        self.database_url = database_url
        self.is_sqlite = database_url.startswith("sqlite")

        if self.is_sqlite:
            kwargs = {"connect_args": {"check_same_thread": False}, "echo": echo}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # In-memory databases must share one connection across threads
                kwargs["poolclass"] = StaticPool
            self.engine = create_engine(database_url, **kwargs)
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        else:
            self.engine = create_engine(
                database_url,
                pool_pre_ping=True,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_recycle=3600,
                echo=echo,
            )

        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
        logger.info(f"DatabaseManager initialized ({self.engine.dialect.name})")

    def init_db(self) -> None:
        """Create all tables (development and tests; production uses Alembic)."""
        Base.metadata.create_all(self.engine)
        logger.info("Database schema created")

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


_db_manager: Optional[DatabaseManager] = None


def get_database_manager(database_url: Optional[str] = None) -> DatabaseManager:
    """Return the process-wide DatabaseManager, creating it on first use."""
    global _db_manager
    if _db_manager is None:
        if database_url is None:
            from ...setting import get_settings
            settings = get_settings().database
            _db_manager = DatabaseManager(
                settings.url,
                pool_size=settings.pool_size,
                max_overflow=settings.max_overflow,
                echo=settings.echo,
            )
        else:
            _db_manager = DatabaseManager(database_url)
    return _db_manager


def wait_for_db(db_manager: DatabaseManager, max_attempts: int = 10, delay: float = 2.0) -> bool:
    """Block until the database answers ``SELECT 1`` or attempts run out."""
    for attempt in range(1, max_attempts + 1):
        try:
            with db_manager.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is available")
            return True
        except OperationalError as e:
            logger.warning(f"Database not ready (attempt {attempt}/{max_attempts}): {e}")
            time.sleep(delay)
    logger.error("Database did not become available")
    return False
