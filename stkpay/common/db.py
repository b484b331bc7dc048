"""Database bootstrap helpers."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


def make_engine(database_url: str, **kwargs) -> Engine:
    """Create the single SQLAlchemy engine owned by the process."""

    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(database_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    # `expire_on_commit=False` keeps ORM objects readable after commit in handlers.
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass
