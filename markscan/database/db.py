"""Database engine and session management."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import get_database_url
from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def init_db(database_url: Optional[str] = None) -> Engine:
    """
    Create the engine and all tables.

    Args:
        database_url: SQLAlchemy URL; defaults to the configured SQLite file

    Returns:
        The engine now used by get_session()
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()
    if url.startswith("sqlite:///"):
        Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    if _engine is not None:
        _engine.dispose()

    _engine = create_engine(url, future=True)
    _SessionLocal = sessionmaker(bind=_engine, expire_on_commit=False)
    Base.metadata.create_all(_engine)
    logger.debug("Database ready at %s", url)
    return _engine


@contextmanager
def get_session() -> Iterator[Session]:
    """Yield a session; roll back on error, always close."""
    if _SessionLocal is None:
        init_db()

    session = _SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
