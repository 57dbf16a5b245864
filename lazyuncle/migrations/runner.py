"""Schema migrations.

Migrations are modules exposing an async ``upgrade(db)``. They are applied
in list order and recorded in ``schema_migrations``; a module that has been
recorded is never run again.
"""

import importlib
import logging

import aiosqlite

from lazyuncle import clock

logger = logging.getLogger(__name__)

MIGRATIONS = [
    "lazyuncle.migrations.m001_initial",
]


async def applied_migrations(db: aiosqlite.Connection) -> list[str]:
    """Names of recorded migrations, oldest first."""
    await db.execute(
        """CREATE TABLE IF NOT EXISTS schema_migrations (
               name        TEXT PRIMARY KEY,
               applied_at  TEXT NOT NULL
           )"""
    )
    cursor = await db.execute("SELECT name FROM schema_migrations ORDER BY applied_at, name")
    return [row[0] for row in await cursor.fetchall()]


async def run_migrations(db: aiosqlite.Connection) -> list[str]:
    """Apply pending migrations and return the names just applied."""
    done = set(await applied_migrations(db))
    await db.commit()

    newly_applied = []
    for name in MIGRATIONS:
        if name in done:
            continue
        await importlib.import_module(name).upgrade(db)
        await db.execute(
            "INSERT INTO schema_migrations (name, applied_at) VALUES (?, ?)",
            (name, clock.now_db()),
        )
        await db.commit()
        logger.info("Applied migration %s", name)
        newly_applied.append(name)
    return newly_applied
