"""Database setup and session management using SQLAlchemy 2.0.

This module defines the declarative base, the ``Database`` access object that
owns the engine and session factory, and the scoped ``transaction`` helper
used by every multi-statement mutation.

The ``Database`` is constructed once by the application factory and stored on
``app.state``; nothing here creates an engine at import time.
"""

from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from intake_api.config import Settings
from intake_api.errors import DatabaseOperationError
from intake_api.logging_config import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all ORM models.

    Uses SQLAlchemy 2.0's DeclarativeBase for modern type-safe models.
    All models should inherit from this class.
    """
    pass


def _mask_url(url: str) -> str:
    """Hide credentials in a database URL for logging."""
    return url.split("@")[-1] if "@" in url else url


class Database:
    """Owns the engine and session factory for one process.

    Attributes:
        url: Database connection string
        engine: SQLAlchemy engine with connection pooling
        SessionLocal: Session factory bound to ``engine``

    Example:
        database = Database(settings.database_url)
        database.create_all()
        with database.session() as db:
            ...
        database.dispose()
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        """Create the engine and session factory.

        Args:
            url: Database connection string
            pool_size: Pool size (ignored for SQLite)
            max_overflow: Pool overflow (ignored for SQLite)
            echo: Log emitted SQL
        """
        self.url = url

        engine_kwargs: Dict[str, Any] = {
            "pool_pre_ping": True,  # Verify connections before using
            "echo": echo,
        }

        # SQLite doesn't support pool_size/max_overflow
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
                # One shared connection, otherwise each checkout sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_size"] = pool_size
            engine_kwargs["max_overflow"] = max_overflow

        self.engine: Engine = create_engine(url, **engine_kwargs)

        if url.startswith("sqlite"):
            _configure_sqlite(self.engine)

        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,  # Prevent lazy loading after commit
        )

        logger.info(f"Database configured: {_mask_url(url)}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Build a Database from application settings."""
        return cls(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=False,
        )

    def session(self) -> Session:
        """Open a new session; the caller is responsible for closing it."""
        return self.SessionLocal()

    def create_all(self) -> None:
        """Create any missing tables."""
        # Import models so every table is registered on Base.metadata
        import intake_api.models  # noqa: F401

        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables (tests and reset tooling only)."""
        Base.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()
        logger.info("Database connections disposed")


def _configure_sqlite(engine: Engine) -> None:
    """Enable foreign keys and SAVEPOINT support for pysqlite.

    pysqlite starts transactions lazily and breaks SAVEPOINT semantics, so
    the driver's own BEGIN handling is disabled and SQLAlchemy emits BEGIN.
    """

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def describe_db_error(exc: DBAPIError) -> Dict[str, Optional[str]]:
    """Extract the driver's error code and detail from a DBAPI error.

    Args:
        exc: SQLAlchemy-wrapped driver exception

    Returns:
        dict with ``code`` (e.g. PostgreSQL SQLSTATE ``23505``) and ``detail``
    """
    orig = exc.orig
    code = (
        getattr(orig, "pgcode", None)
        or getattr(orig, "sqlstate", None)
        or getattr(orig, "sqlite_errorname", None)
    )
    diag = getattr(orig, "diag", None)
    detail = getattr(diag, "message_detail", None) if diag is not None else None
    return {"code": code, "detail": detail or str(orig)}


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a block of statements atomically.

    Commits when the block finishes and rolls back if it raises. Driver
    errors are re-raised as ``DatabaseOperationError`` carrying the
    original error code and detail; other exceptions propagate unchanged.

    Args:
        db: Session the block operates on

    Yields:
        Session: the same session

    Example:
        with transaction(db):
            db.add(row)
            db.flush()
    """
    try:
        yield db
        db.commit()
    except DBAPIError as e:
        db.rollback()
        info = describe_db_error(e)
        logger.error(f"Transaction rolled back after database error: {info['detail']}")
        raise DatabaseOperationError(
            "Database operation failed",
            code=info["code"],
            details=info["detail"],
        ) from e
    except Exception:
        db.rollback()
        raise


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency function for FastAPI to provide database sessions.

    The session comes from the ``Database`` stored on ``app.state`` by the
    application factory.

    Yields:
        Session: SQLAlchemy database session

    Note:
        The session is automatically closed after the request completes,
        even if an exception occurs.
    """
    database: Database = request.app.state.database
    db = database.session()
    try:
        yield db
    finally:
        db.close()
