import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.exceptions import PersistenceFailure
from .settings import settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    """Connection options that bound how long a transaction may hold row locks"""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": 15}}

    options = {
        "pool_pre_ping": True,
        "pool_recycle": settings.db_pool_recycle,
        "pool_size": settings.db_pool_size,
        "pool_timeout": settings.db_pool_timeout,
    }
    if database_url.startswith("postgresql"):
        options["connect_args"] = {
            "options": (
                f"-c lock_timeout={settings.db_lock_timeout_ms} "
                f"-c idle_in_transaction_session_timeout={settings.db_idle_in_transaction_timeout_ms}"
            )
        }
    return options


def build_engine(database_url: str, echo: bool = False) -> Engine:
    return create_engine(database_url, echo=echo, **_engine_options(database_url))


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create engine
engine = build_engine(settings.database_url, echo=settings.debug)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

# Database dependency
def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back"""
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Unit of work rolled back after a database error")
        raise PersistenceFailure("Database error, no changes were saved", {"cause": type(e).__name__}) from e
    except Exception:
        db.rollback()
        raise


def create_tables(bind: Engine = None):
    # Import models so they are registered on Base.metadata
    from app.shared.database import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
