"""
Database setup for Pocket Duel.
Uses SQLite locally; use DATABASE_URL (e.g. Heroku Postgres) for production.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

DB_DIR = os.path.dirname(os.path.abspath(__file__))

# Heroku sets DATABASE_URL to postgres://; SQLAlchemy 2.x expects postgresql://
_raw_url = os.environ.get("DATABASE_URL")
if _raw_url and _raw_url.startswith("postgres://"):
    DATABASE_URL = _raw_url.replace("postgres://", "postgresql://", 1)
elif _raw_url:
    DATABASE_URL = _raw_url
else:
    DATABASE_URL = f"sqlite:///{os.path.join(DB_DIR, 'pocket_duel.db')}"

Base = declarative_base()


def make_engine(url: str) -> Engine:
    """
    Create an engine for url.
    SQLite needs check_same_thread=False (sessions cross threadpool workers) and a busy
    timeout so concurrent writers wait for the lock instead of failing; Postgres uses neither.
    """
    connect_args = {"check_same_thread": False, "timeout": 30} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)


def get_db_file_path() -> str | None:
    """Path of the SQLite file in use, or None for other backends."""
    if DATABASE_URL.startswith("sqlite:///"):
        return DATABASE_URL[len("sqlite:///"):]
    return None


def get_db():
    """Dependency that yields a DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine | None = None):
    """Create all tables."""
    # models must be imported so their tables are registered on Base
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
