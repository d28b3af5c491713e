# motelhub/db/engine.py
"""
SQLModel database engine and session management.
Supports SQLite (default) and PostgreSQL via the DATABASE_URL environment variable.
The engine is built once at import time and shared; sessions are per request.
"""

import os
from typing import Generator

from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine

from ..core.config import get_settings

# --- Database URL Configuration ---
DATABASE_URL = get_settings().database_url

if DATABASE_URL is None:
    # Default to SQLite in data/db/
    DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "data")
    DATABASE_FILE = os.path.join(DATA_DIR, "db", "motelhub.sqlite")
    os.makedirs(os.path.dirname(DATABASE_FILE), exist_ok=True)
    DATABASE_URL = f"sqlite:///{DATABASE_FILE}"

_is_sqlite = DATABASE_URL.startswith("sqlite")
_connect_args = {"check_same_thread": False} if _is_sqlite else {}

engine = create_engine(DATABASE_URL, echo=False, connect_args=_connect_args)


# Activate WAL mode and foreign keys only for SQLite
if _is_sqlite:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()


def get_session() -> Generator[Session, None, None]:
    """
    Dependency for SQLModel session injection.
    Usage: session: Session = Depends(get_session)
    """
    with Session(engine) as session:
        yield session


def create_db_and_tables():
    """
    Create all tables defined in SQLModel models.
    Call this at application startup after importing all models.
    """
    from .. import models  # noqa: F401  (registers the tables)

    SQLModel.metadata.create_all(engine)
