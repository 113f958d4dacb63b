"""
Database configuration for the Twofactor Authenticator service
"""

import os
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from twofactor.config import get_settings

DATABASE_URL = get_settings().database_url


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}  # Required for SQLite
    return {}


engine = create_engine(DATABASE_URL, connect_args=_connect_args(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db):
    """
    Commit on success, roll back on any error

    Usage:
        with transaction(db):
            db.add(row)
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def init_db(bind=None):
    """Initialize database tables"""
    from twofactor.auth import models  # noqa: F401  register tables on Base

    bind = bind or engine
    url = str(bind.url)
    if url.startswith("sqlite:///") and not url.endswith(":memory:"):
        # Create the database directory if it doesn't exist
        directory = os.path.dirname(url[len("sqlite:///"):])
        if directory:
            os.makedirs(directory, exist_ok=True)
    Base.metadata.create_all(bind=bind)
