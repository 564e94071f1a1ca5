"""
Database setup for the thumbnail record store.
Provides SQLAlchemy engine/session utilities (SQLite by default).
"""
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from settings import settings

Base = declarative_base()


def make_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or settings.THUMBNAIL_DB_URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    """Create tables if they don't exist."""
    from repositories import models  # noqa: F401  Ensures models are registered

    Base.metadata.create_all(bind=engine)


def make_session_factory(database_url: Optional[str] = None) -> sessionmaker:
    engine = make_engine(database_url)
    init_db(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)
