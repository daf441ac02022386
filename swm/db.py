"""Database wiring: declarative base, engine and session factory."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from swm import config

Base = declarative_base()


def make_engine(url: Optional[str] = None, **kwargs) -> Engine:
    url = url or config.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False, "timeout": 30})
    return create_engine(url, pool_pre_ping=True, future=True, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    # records handed back to callers stay readable after the session closes
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all ledger tables. Alembic owns the schema in production."""
    import swm.ledger.models  # noqa: F401  (registers tables on Base)

    Base.metadata.create_all(bind=engine)
