"""
Engine, session factory and the request-scoped session dependency.

Postgres in deployment (pooled); SQLite for local runs and tests, where a
single shared connection keeps an in-memory database alive across the
request threadpool.
"""
import logging
import time
from typing import Iterator

from fastapi import HTTPException
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from core.config import settings

logger = logging.getLogger(__name__)

CONNECT_ATTEMPTS = 3
CONNECT_BACKOFF_S = 0.1


def build_database_url() -> str:
    """DATABASE_URL when set, else Postgres from the POSTGRES_* parts."""
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    return (
        f"postgresql://{settings.POSTGRES_USER}:{settings.POSTGRES_PASSWORD}"
        f"@{settings.POSTGRES_HOST}:{settings.POSTGRES_PORT}/{settings.POSTGRES_DB}"
    )


DATABASE_URL = build_database_url()
IS_SQLITE = DATABASE_URL.startswith("sqlite")

if IS_SQLITE:
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=settings.DEBUG,
    )
else:
    engine = create_engine(
        DATABASE_URL,
        poolclass=QueuePool,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

Base = declarative_base()


@event.listens_for(engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    # Off by default in SQLite; chain deletes rely on ON DELETE CASCADE
    if IS_SQLITE:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _open_session() -> Session:
    """A session whose connection has answered SELECT 1, with backoff between attempts."""
    for attempt in range(1, CONNECT_ATTEMPTS + 1):
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            return db
        except SQLAlchemyError as e:
            db.close()
            if attempt == CONNECT_ATTEMPTS:
                logger.error(f"Database unreachable after {CONNECT_ATTEMPTS} attempts: {e}")
                raise
            logger.warning(f"Database connect attempt {attempt} failed, retrying")
            time.sleep(CONNECT_BACKOFF_S * (2 ** (attempt - 1)))


def get_db() -> Iterator[Session]:
    """
    FastAPI dependency: one session per request.

    Commits when the handler returns, rolls back when it raises. HTTP errors
    are expected outcomes and aren't logged here.
    """
    db = _open_session()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        if not isinstance(e, HTTPException):
            logger.error(f"Request transaction rolled back: {e}")
        raise
    finally:
        db.close()


def check_db_connection() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False
