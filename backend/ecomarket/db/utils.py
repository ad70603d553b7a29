"""
Database utility functions for dialect-aware statements.

Upserts are expressed with INSERT .. ON CONFLICT, which PostgreSQL and SQLite
both support but through dialect-specific insert constructs.
"""
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(db: AsyncSession, table):
    """
    Build an INSERT supporting on_conflict_do_update/do_nothing for the
    session's dialect.

    Args:
        db: Async session (its bind decides the dialect)
        table: Model class or Table

    Returns:
        Dialect-specific Insert construct
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(table)
    if dialect == "sqlite":
        return sqlite_insert(table)
    raise NotImplementedError(f"Upsert is not supported for dialect {dialect!r}")
