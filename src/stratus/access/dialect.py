"""Dialect detection and single-statement upserts for link and grant rows.

Links and grants are keyed by natural keys (resource, or resource + email),
so every write is one ``INSERT .. ON CONFLICT`` (SQLite, PostgreSQL) or
``MERGE`` (MSSQL) statement and concurrent writers resolve last-write-wins.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

_ALIASES = {
    "sqlite": "sqlite",
    "postgresql": "postgresql",
    "postgres": "postgresql",
    "mssql": "mssql",
    "pyodbc": "mssql",
}

_ON_CONFLICT_INSERT = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def get_dialect(engine: Engine | AsyncEngine) -> str:
    """Return 'sqlite', 'postgresql', 'mssql', or the raw dialect name."""
    name = getattr(engine, "sync_engine", engine).dialect.name
    return _ALIASES.get(name, name)


def _changed_columns(
    values: dict[str, Any],
    conflict_keys: Sequence[str],
    update_keys: Sequence[str] | None,
) -> list[str]:
    """Columns overwritten when the conflict key already exists."""
    if update_keys is None:
        return [k for k in values if k not in conflict_keys]
    return [k for k in values if k in update_keys]


def merge_sql(
    table: str,
    columns: Sequence[str],
    conflict_keys: Sequence[str],
    changed: Sequence[str],
    schema: str | None = None,
) -> str:
    """Render an MSSQL ``MERGE`` whose source row binds every column by name."""
    target = f"[{schema}].[{table}]" if schema else f"[{table}]"
    source = ", ".join(f":{c} AS [{c}]" for c in columns)
    match = " AND ".join(f"target.[{k}] = source.[{k}]" for k in conflict_keys)
    insert_cols = ", ".join(f"[{c}]" for c in columns)
    insert_vals = ", ".join(f"source.[{c}]" for c in columns)

    clauses = [
        f"MERGE INTO {target} WITH (HOLDLOCK) AS target",
        f"USING (SELECT {source}) AS source",
        f"ON {match}",
    ]
    if changed:
        assignments = ", ".join(f"target.[{c}] = source.[{c}]" for c in changed)
        clauses.append(f"WHEN MATCHED THEN UPDATE SET {assignments}")
    clauses.append(f"WHEN NOT MATCHED THEN INSERT ({insert_cols}) VALUES ({insert_vals});")
    return "\n".join(clauses)


async def upsert(
    session: AsyncSession,
    dialect: str,
    model: type,
    values: dict[str, Any],
    conflict_keys: Sequence[str],
    update_keys: Sequence[str] | None = None,
    schema: str | None = None,
) -> int:
    """Insert *values* into *model*'s table or update the row matching *conflict_keys*.

    *update_keys* limits which columns are overwritten on conflict; by
    default every non-key column is.  An empty list leaves an existing row
    untouched.  Returns the driver's rowcount.
    """
    changed = _changed_columns(values, conflict_keys, update_keys)

    if dialect == "mssql":
        table = model.__table__  # type: ignore[attr-defined]
        sql = merge_sql(table.name, list(values), conflict_keys, changed, schema or table.schema)
        result = await session.execute(text(sql), values)
        return result.rowcount  # type: ignore[attr-defined]

    insert = _ON_CONFLICT_INSERT.get(dialect)
    if insert is None:
        raise ValueError(f"Upsert is not supported on dialect {dialect!r}")

    stmt = insert(model).values(**values)
    if changed:
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_keys),
            set_={c: stmt.excluded[c] for c in changed},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_keys))
    if schema:
        stmt = stmt.execution_options(schema_translate_map={None: schema})

    result = await session.execute(stmt)
    return result.rowcount  # type: ignore[attr-defined]
