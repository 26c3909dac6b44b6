"""Database engine, session factory and the FastAPI session dependency."""

import logging
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from sleep_journal.config import DATABASE_URL, SQL_ECHO

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(url: str = DATABASE_URL, **kwargs) -> Engine:
    """Create an engine for the given URL.

    SQLite connections get foreign key enforcement switched on and may be
    shared across FastAPI's threadpool workers.
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        kwargs["connect_args"] = connect_args

    db_engine = create_engine(url, echo=SQL_ECHO, **kwargs)

    if db_engine.dialect.name == "sqlite":
        @event.listens_for(db_engine, "connect")
        def _enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return db_engine


engine = create_db_engine()

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)


def init_db(db_engine: Engine | None = None) -> None:
    """Create all tables that don't exist yet."""
    # Register the mapped classes on Base.metadata
    import sleep_journal.models  # noqa: F401

    Base.metadata.create_all(bind=db_engine or engine)
    logger.info("Database tables ensured")


def get_db() -> Iterator[Session]:
    """
    Dependency for FastAPI to get a database session.

    Commits when the request handler returns normally and rolls back
    on any exception.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_db_connection(db_engine: Engine | None = None) -> bool:
    """Check if the database answers a trivial query."""
    try:
        with (db_engine or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
