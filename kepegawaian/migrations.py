"""Schema bootstrap: create the employees table and add missing columns.

Evolution is additive only. Columns introduced after the first release are
listed in ``ADDITIVE_COLUMNS`` and added to an existing table when absent;
nothing is ever dropped or renamed.
"""
from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine

from .models import Base, Employee

logger = logging.getLogger(__name__)


ADDITIVE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("education", "TEXT"),
    ("religion", "TEXT"),
    ("doc_ktp", "TEXT"),
    ("doc_sk_pangkat", "TEXT"),
    ("doc_sk_berkala", "TEXT"),
    ("doc_sk_jabatan", "TEXT"),
)


def _existing_columns(conn: Connection, table_name: str) -> set[str]:
    return {column["name"] for column in inspect(conn).get_columns(table_name)}


def _add_missing_columns(conn: Connection) -> list[str]:
    table_name = Employee.__tablename__
    existing = _existing_columns(conn, table_name)
    added = []

    for name, sql_type in ADDITIVE_COLUMNS:
        if name in existing:
            continue
        try:
            # A failed ALTER rolls back to its savepoint, leaving the outer transaction usable
            with conn.begin_nested():
                conn.execute(text(f"ALTER TABLE {table_name} ADD COLUMN {name} {sql_type}"))
        except Exception as e:
            logger.error(f"Error adding column {name}: {e}")
            continue
        logger.info(f"Added missing column: {name}")
        added.append(name)

    return added


async def bootstrap_schema(engine: AsyncEngine) -> list[str]:
    """Create tables if absent and add any missing optional columns.

    Safe to run on every startup.

    Args:
        engine: Async engine bound to the target database

    Returns:
        Names of the columns added by this run (empty when up to date)
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        return await conn.run_sync(_add_missing_columns)
