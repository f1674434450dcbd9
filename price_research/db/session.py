# price_research/db/session.py
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from price_research.config import get_settings
from price_research.logger import get_logger

logger = get_logger(__name__)

_engine = None
_SessionLocal = None


def build_engine(db_url: str, **kwargs) -> Engine:
    connect_args = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args, **kwargs)

    if engine.dialect.name == "sqlite":
        # SQLite ignores ON DELETE CASCADE unless asked per connection
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        db_url = get_settings().database_url
        if not db_url:
            raise RuntimeError("DATABASE_URL not set")
        logger.info("Using database URL: %s", db_url)
        _engine = build_engine(db_url)
    return _engine


def get_session() -> Session:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine()
        )
    return _SessionLocal()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    One transactional unit: commit when the block finishes, roll back on any
    exception and re-raise it.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
