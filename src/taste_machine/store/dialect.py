"""Dialect-specific ``INSERT ... ON CONFLICT`` construction."""

from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def upsert_for(session: AsyncSession, table: sa.Table):
    """Return an insert construct that supports ``on_conflict_do_update``.

    Only PostgreSQL (production) and SQLite (tests, local runs) are
    supported.
    """
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"upsert not supported for dialect {name!r}")
