"""SQLAlchemy engine and session management for the record store."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from . import config

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _engine_options(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        # FastAPI runs sync dependencies in a threadpool.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""

    global _engine, _session_factory
    if _engine is None:
        database_url = config.get_database_url()
        _engine = create_engine(database_url, **_engine_options(database_url))
        _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
        logger.info("Database engine created for %s", _engine.url.render_as_string(hide_password=True))
    return _engine


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None
    return _session_factory


def init_db() -> None:
    """Create the tables registered on ``Base`` if they do not exist yet."""

    from . import models  # noqa: F401  (registers the mapped classes)

    Base.metadata.create_all(bind=get_engine())


def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None


def get_db() -> Iterator[Session]:
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


__all__ = [
    "Base",
    "dispose_engine",
    "get_db",
    "get_engine",
    "get_session_factory",
    "init_db",
]
