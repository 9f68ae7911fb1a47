"""Reusable SQLAlchemy engine and session manager for the embedded SQLite store."""

from contextlib import contextmanager
import logging
from typing import Iterator

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from models.tables import Base


logger = logging.getLogger(__name__)


def _is_memory_url(database_url: str) -> bool:
    """Return whether the URL points at a private in-memory SQLite database."""
    return database_url in {"sqlite://", "sqlite:///:memory:"}


class DatabaseManager:
    """Encapsulates engine setup, schema creation and transactional sessions."""

    def __init__(self, database_url: str, timeout_sec: float = 10.0) -> None:
        """Initialize the engine.

        Args:
            database_url: SQLAlchemy URL, e.g. `sqlite:///chainvoice.db`.
            timeout_sec: SQLite busy timeout so a locked file cannot stall callers forever.
        """
        try:
            connect_args = {}
            engine_kwargs = {}
            if database_url.startswith("sqlite"):
                connect_args = {"check_same_thread": False, "timeout": float(timeout_sec)}
                if _is_memory_url(database_url):
                    # One shared connection, otherwise each session sees an empty database.
                    engine_kwargs["poolclass"] = StaticPool
            self._database_url = database_url
            self._engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
            logger.info("DatabaseManager initialized url=%s", database_url)
        except Exception:
            logger.exception("Failed to initialize database engine url=%s", database_url)
            raise

    @property
    def engine(self):
        return self._engine

    def create_schema(self) -> None:
        """Create every mapped table that does not exist yet."""
        try:
            Base.metadata.create_all(self._engine)
            self._add_missing_columns()
            logger.info("Database schema ensured url=%s", self._database_url)
        except Exception:
            logger.exception("Failed to create database schema url=%s", self._database_url)
            raise

    def _add_missing_columns(self) -> None:
        """Add nullable columns introduced after a table was first created."""
        inspector = inspect(self._engine)
        for table in Base.metadata.sorted_tables:
            existing = {column["name"] for column in inspector.get_columns(table.name)}
            for column in table.columns:
                if column.name in existing or not column.nullable:
                    continue
                column_type = column.type.compile(dialect=self._engine.dialect)
                with self._engine.begin() as connection:
                    connection.execute(
                        text("ALTER TABLE {0} ADD COLUMN {1} {2}".format(table.name, column.name, column_type))
                    )
                logger.info("Added column %s.%s", table.name, column.name)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session that commits on success and rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health(self) -> bool:
        """Return whether a trivial query succeeds."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database health check failed.")
            return False

    def dispose(self) -> None:
        self._engine.dispose()
