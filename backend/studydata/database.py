"""Database engine helpers for the SQLite storage backend.

This module configures a SQLModel/SQLAlchemy engine for the configured
database URL and provides the small helpers used by the SQL repository
and tests. For file-based SQLite URLs the containing directory is created
on demand so a fresh checkout can start without pre-provisioning.
"""

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlmodel import SQLModel, create_engine, Session

from . import models  # noqa: F401  (registers tables on SQLModel.metadata)


def make_engine(url: str):
    """Create an engine for `url`, preparing the SQLite file location."""
    parsed = make_url(url)
    connect_args = {}
    if parsed.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=False, connect_args=connect_args)


def create_db_and_tables(engine):
    """Create database tables using SQLModel metadata.

    Idempotent; existing tables are left untouched.
    """
    SQLModel.metadata.create_all(engine)


def session_scope(engine) -> Session:
    """Return a new `Session` bound to `engine` for use as a context manager."""
    return Session(engine)
