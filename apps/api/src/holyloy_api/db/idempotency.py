"""Insert-or-ignore helpers backed by storage-level unique constraints."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import insert as generic_insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession


async def insert_or_ignore(
    session: AsyncSession,
    model: Any,
    values: dict[str, Any],
    *,
    conflict_columns: Sequence[str],
) -> Any | None:
    """Insert ``values`` into ``model`` unless the unique key already exists.

    Returns the new primary key, or ``None`` when the row was rejected by the
    unique constraint on ``conflict_columns``. The rejection does not abort the
    surrounding transaction.
    """

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = (
            postgresql.insert(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
            .returning(model.id)
        )
        return (await session.execute(stmt)).scalar_one_or_none()
    if dialect == "sqlite":
        stmt = (
            sqlite.insert(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=list(conflict_columns))
            .returning(model.id)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    try:
        async with session.begin_nested():
            stmt = generic_insert(model).values(**values).returning(model.id)
            return (await session.execute(stmt)).scalar_one()
    except IntegrityError:
        return None
