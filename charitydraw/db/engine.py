import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .utils import is_sqlite_url, resolve_sqlite_url

load_dotenv()

# Repository root; relative SQLite paths in DB_URL are resolved against it.
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./dev.db"), ROOT_DIR
)


def _enable_sqlite_transactions(engine: Engine) -> None:
    """Enforce foreign keys and let SQLAlchemy issue BEGIN/SAVEPOINT itself.

    pysqlite otherwise defers BEGIN, which breaks the savepoints used for
    all-or-nothing batch settlement.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Create an engine for ``database_url`` (``DB_URL`` by default)."""
    url = database_url or DEFAULT_SQLITE_URL
    if is_sqlite_url(url):
        engine = create_engine(url, echo=echo, future=True)
        _enable_sqlite_transactions(engine)
    else:
        engine = create_engine(url, echo=echo, future=True, pool_pre_ping=True)
    return engine


def get_sessionmaker(engine: Engine) -> sessionmaker:
    # Services hand ORM objects back to callers after commit.
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)
