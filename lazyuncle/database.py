"""Process-wide SQLite connection.

The app holds one aiosqlite connection for its lifetime. ``init_db`` opens
it at startup (and migrates the schema); services fetch it with
``get_db``.
"""

import asyncio
import logging

import aiosqlite

from lazyuncle.config import settings
from lazyuncle.migrations.runner import run_migrations

logger = logging.getLogger(__name__)

# WAL lets the public share page read while moderation writes
PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA busy_timeout=5000",
)

_db: aiosqlite.Connection | None = None
# Every coroutine shares _db and its open transaction. Multi-statement
# writes hold this lock until they commit or roll back.
_write_lock: asyncio.Lock | None = None


async def get_db() -> aiosqlite.Connection:
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db


def write_lock() -> asyncio.Lock:
    if _write_lock is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _write_lock


async def init_db() -> None:
    """Open ``settings.db_path`` and bring its schema up to date."""
    global _db, _write_lock

    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(str(settings.db_path))
    for pragma in PRAGMAS:
        await conn.execute(pragma)
    await conn.commit()

    applied = await run_migrations(conn)
    if applied:
        logger.info("Database %s migrated (%d new)", settings.db_path, len(applied))
    _db = conn
    _write_lock = asyncio.Lock()


async def close_db() -> None:
    global _db, _write_lock
    if _db is not None:
        await _db.close()
        _db = None
    _write_lock = None
