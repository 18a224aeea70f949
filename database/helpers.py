"""
Database helper functions shared by the SQL-backed stores.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from utils.schemas import as_aware_utc

# SQLite drops tzinfo on the way back
as_utc = as_aware_utc


def dialect_insert(session: AsyncSession, table: Any):
    """
    Return an ``INSERT`` construct that supports ``on_conflict_do_*`` for the
    session's dialect (PostgreSQL in production, SQLite in tests).
    """
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return pg_insert(table)
    if name == "sqlite":
        return sqlite_insert(table)
    raise NotImplementedError(f"Native upsert not supported for dialect '{name}'")

