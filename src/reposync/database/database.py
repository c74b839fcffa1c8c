"""Engine and session handling for the reposync bookkeeping database."""

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, make_url, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base
from ..config.settings import get_settings
from ..utils.logging import get_logger


logger = get_logger("database")


def _engine_options(url: URL) -> Dict[str, Any]:
    if url.get_backend_name() == "sqlite":
        # One shared connection keeps in-memory databases alive across sessions
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False, "timeout": 20},
        }
    return {"pool_pre_ping": True, "pool_recycle": 300}


class DatabaseManager:
    """Owns the SQLAlchemy engine and hands out sessions."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or get_settings().database.url
        self.url = make_url(self.database_url)

        self.engine = create_engine(self.url, echo=False, **_engine_options(self.url))
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

        logger.info("Database manager initialized", backend=self.url.get_backend_name(),
                    database=self.url.database)

    @property
    def sqlite_file(self) -> Optional[Path]:
        """Path of the SQLite file, or None for in-memory and server databases."""
        if self.url.get_backend_name() != "sqlite":
            return None
        if not self.url.database or self.url.database == ":memory:":
            return None
        return Path(self.url.database)

    def create_tables(self):
        """Create the repository and sync log tables if missing."""
        db_file = self.sqlite_file
        if db_file is not None:
            db_file.parent.mkdir(parents=True, exist_ok=True)

        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            logger.error("Failed to create database tables", error=str(e))
            raise
        logger.info("Database tables ready", tables=sorted(Base.metadata.tables))

    def drop_tables(self):
        Base.metadata.drop_all(bind=self.engine)
        logger.info("Database tables dropped")

    def get_session(self) -> Session:
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Commit on success, roll back and re-raise on any error."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("Database transaction rolled back", error=str(e))
            raise
        finally:
            session.close()

    def test_connection(self) -> bool:
        """Run a trivial query; False when the database is unreachable."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Database connection test failed", error=str(e))
            return False
        return True

    def dispose(self):
        self.engine.dispose()


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    """Return the process-wide manager, creating it from settings on first use."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


def init_database(database_url: Optional[str] = None, create_tables: bool = True) -> DatabaseManager:
    """Replace the process-wide manager and verify it can connect."""
    global _db_manager
    manager = DatabaseManager(database_url)
    if create_tables:
        manager.create_tables()
    if not manager.test_connection():
        manager.dispose()
        raise RuntimeError(f"Cannot connect to database {manager.url.render_as_string(hide_password=True)}")

    _db_manager = manager
    return manager


def close_database():
    global _db_manager
    if _db_manager is not None:
        _db_manager.dispose()
        _db_manager = None
        logger.info("Database connections closed")
