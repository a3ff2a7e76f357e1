"""Database engine, session factory and declarative base."""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def create_session_factory(database_url: str, engine: Optional[Engine] = None) -> sessionmaker:
    """Create a session factory bound to ``database_url``.

    Args:
        database_url: SQLAlchemy URL (ignored when ``engine`` is given)
        engine: Optional pre-built engine (tests pass a SQLite engine)

    Returns:
        Configured sessionmaker
    """
    if engine is None:
        connect_args = {}
        if database_url.startswith("sqlite"):
            # Worker threads share the file; wait on the write lock instead of failing
            connect_args = {"check_same_thread": False, "timeout": 30}
        engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
