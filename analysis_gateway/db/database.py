# analysis_gateway/db/database.py
# Datenbank-Abstraktion: SQLite (dev) oder PostgreSQL (production)
from __future__ import annotations

from typing import Any


def is_postgres(db_url: str) -> bool:
    """Prüft, ob DATABASE_URL auf PostgreSQL zeigt."""
    return db_url.startswith("postgres://") or db_url.startswith("postgresql://")


def _to_postgres(query: str, param_count: int) -> str:
    """SQLite-Platzhalter (?) in PostgreSQL-Platzhalter ($1, $2, ...) umschreiben."""
    pg_query = query
    for i in range(1, param_count + 1):
        pg_query = pg_query.replace("?", f"${i}", 1)
    return pg_query


async def execute_query(
    db_url: str,
    query: str,
    params: tuple | list | None = None,
    fetch: str | None = None,
) -> Any:
    """
    Führt SQL-Query aus (abstrahiert SQLite vs PostgreSQL).

    Args:
        db_url: Datenbank-URL
        query: SQL-Query mit ?-Platzhaltern
        params: Query-Parameter
        fetch: "one", "all", "val", "count" oder None (für INSERT/UPDATE)

    Returns:
        - None (kein fetch)
        - dict (fetch="one")
        - list[dict] (fetch="all")
        - scalar (fetch="val")
        - int betroffene Zeilen (fetch="count")
    """
    params = tuple(params or ())

    if is_postgres(db_url):
        import asyncpg

        conn = await asyncpg.connect(db_url)
        try:
            pg_query = _to_postgres(query, len(params))

            if fetch == "one":
                row = await conn.fetchrow(pg_query, *params)
                return dict(row) if row else None
            elif fetch == "all":
                rows = await conn.fetch(pg_query, *params)
                return [dict(row) for row in rows]
            elif fetch == "val":
                return await conn.fetchval(pg_query, *params)
            else:
                result = await conn.execute(pg_query, *params)
                if fetch == "count":
                    # PostgreSQL execute() gibt z.B. "DELETE 1" zurück
                    return int(result.split()[-1]) if result else 0
                return None
        finally:
            await conn.close()
    else:
        import aiosqlite

        async with aiosqlite.connect(db_url) as db:
            db.row_factory = aiosqlite.Row  # dict-ähnliche Zeilen

            if fetch == "one":
                async with db.execute(query, params) as cursor:
                    row = await cursor.fetchone()
                    return dict(row) if row else None
            elif fetch == "all":
                async with db.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
                    return [dict(row) for row in rows]
            elif fetch == "val":
                async with db.execute(query, params) as cursor:
                    row = await cursor.fetchone()
                    return row[0] if row else None
            else:
                cursor = await db.execute(query, params)
                await db.commit()
                if fetch == "count":
                    return cursor.rowcount
                return None


async def execute_script(db_url: str, statements: list[str]) -> None:
    """Mehrere DDL-Statements nacheinander ausführen (Schema-Initialisierung, idempotent)."""
    if is_postgres(db_url):
        import asyncpg

        conn = await asyncpg.connect(db_url)
        try:
            for statement in statements:
                await conn.execute(statement)
        finally:
            await conn.close()
    else:
        import aiosqlite

        async with aiosqlite.connect(db_url) as db:
            for statement in statements:
                await db.execute(statement)
            await db.commit()
