"""Insert-or-ignore against a unique column.

Webhook deliveries for the same object can race each other, so "does it
exist yet?" checks in Python are not enough. The unique constraint decides
and ``ON CONFLICT DO NOTHING ... RETURNING`` reports whether this caller
won the insert.
"""
from typing import Any, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def insert_or_ignore(
    db: AsyncSession,
    model: Any,
    values: dict[str, Any],
    conflict_column: str,
) -> Optional[str]:
    """
    Insert a row unless one with the same ``conflict_column`` value exists.

    Returns the new row's uuid, or None when the row already existed.
    Python-side column defaults (uuid, timestamps) are applied as usual.
    """
    dialect_name = db.get_bind().dialect.name
    insert_fn = _DIALECT_INSERTS.get(dialect_name)
    if insert_fn is None:
        raise RuntimeError(f"insert_or_ignore is not supported on dialect {dialect_name}")

    stmt = (
        insert_fn(model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=[conflict_column])
        .returning(model.uuid)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
