from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from innopark.core.config import get_settings


class Base(DeclarativeBase):
    pass


SessionLocal = sessionmaker(autocommit=False, autoflush=False)


@lru_cache
def get_engine() -> Engine:
    return create_engine(get_settings().database_url, pool_pre_ping=True)


def new_session() -> Session:
    return SessionLocal(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    session = new_session()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def transaction_scope(session: Session) -> Iterator[Session]:
    """Commit everything written inside the block, or nothing.

    Any exception rolls the session back before it propagates; the caller
    still owns closing the session.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
