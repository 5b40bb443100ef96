"""SQLAlchemy 2.x async database setup.

Engines are built from settings at application startup rather than at import
time, so tests and the CLI can point at their own database.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import DatabaseSettings


def _use_explicit_sqlite_transactions(engine: AsyncEngine) -> None:
    """Make every SQLAlchemy transaction on SQLite start with ``BEGIN``.

    The sqlite3 driver otherwise delays ``BEGIN`` until the first write, so
    reads made inside a transaction are not covered by it and ``SAVEPOINT``
    does not nest correctly.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(db_settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine, making sure a SQLite file's directory exists."""
    url = make_url(db_settings.url)
    is_sqlite = url.get_backend_name() == "sqlite"
    if is_sqlite and url.database and url.database != ":memory:":
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(db_settings.url, echo=db_settings.echo, future=True)
    if is_sqlite:
        _use_explicit_sqlite_transactions(engine)
    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


def safe_url(url: str) -> str:
    """Render a database URL without its password, for logging."""
    return make_url(url).render_as_string(hide_password=True)
