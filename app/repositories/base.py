from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import is_unique_violation

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def insert_ignore_duplicate(
    db: AsyncSession,
    model,
    values: dict,
    conflict_columns: list[str] | None = None,
) -> bool:
    """
    Insert one row of *model*, treating a unique-constraint collision as
    "row already present".  Returns True only when a row was inserted.

    PostgreSQL and SQLite use ``INSERT ... ON CONFLICT DO NOTHING`` so the
    outer transaction is never aborted.  Other dialects insert inside a
    SAVEPOINT and roll back to it on a unique violation; any other database
    error propagates.
    """
    table = model.__table__
    dialect = db.get_bind().dialect.name

    upsert_insert = _UPSERT_INSERTS.get(dialect)
    if upsert_insert is not None:
        stmt = upsert_insert(table).values(**values).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
        result = await db.execute(stmt)
        return result.rowcount == 1

    try:
        async with db.begin_nested():
            await db.execute(insert(table).values(**values))
    except IntegrityError as exc:
        if is_unique_violation(exc):
            return False
        raise
    return True


async def execute_ignore_duplicate(db: AsyncSession, stmt) -> bool:
    """
    Run a DML *stmt* inside a SAVEPOINT.  Returns False, with the outer
    transaction intact, when it hits a unique constraint; any other database
    error propagates.
    """
    try:
        async with db.begin_nested():
            await db.execute(stmt)
    except IntegrityError as exc:
        if is_unique_violation(exc):
            return False
        raise
    return True
