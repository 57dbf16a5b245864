"""Tests for connection setup and schema migrations."""

import pytest


@pytest.mark.asyncio
async def test_migrations_are_recorded_once(db):
    from lazyuncle.migrations.runner import MIGRATIONS, applied_migrations, run_migrations

    assert await applied_migrations(db) == MIGRATIONS
    assert await run_migrations(db) == []


@pytest.mark.asyncio
async def test_pragmas_applied(db):
    cursor = await db.execute("PRAGMA foreign_keys")
    assert (await cursor.fetchone())[0] == 1
    cursor = await db.execute("PRAGMA journal_mode")
    assert (await cursor.fetchone())[0] == "wal"


@pytest.mark.asyncio
async def test_submission_status_is_constrained(db, owner, insert_link):
    import sqlite3

    link = await insert_link(owner["id"])
    with pytest.raises(sqlite3.IntegrityError):
        await db.execute(
            """INSERT INTO birthday_submissions (sharing_link_id, name, month, day, status)
               VALUES (?, 'Avery', 3, 2, 'MAYBE')""",
            (link["id"],),
        )
    await db.rollback()


@pytest.mark.asyncio
async def test_get_db_requires_init():
    from lazyuncle import database

    assert database._db is None
    with pytest.raises(RuntimeError, match="Database not initialized"):
        await database.get_db()
    with pytest.raises(RuntimeError, match="Database not initialized"):
        database.write_lock()
