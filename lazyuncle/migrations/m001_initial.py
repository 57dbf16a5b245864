"""Initial database schema.

Creates users, birthdays, sharing links, submissions and notification
preferences. Timestamps are written by the application (see
``lazyuncle.clock``); the column defaults only cover rows inserted by hand.
"""

import aiosqlite


async def upgrade(db: aiosqlite.Connection) -> None:
    """Create the initial database schema."""

    # ── Users ────────────────────────────────────────────────────────────
    await db.execute("""
        CREATE TABLE users (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            email           TEXT NOT NULL UNIQUE,
            name            TEXT,
            password_hash   TEXT NOT NULL,
            created_at      TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    # ── Birthdays ────────────────────────────────────────────────────────
    await db.execute("""
        CREATE TABLE birthdays (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id         INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name            TEXT NOT NULL,
            year            INTEGER,
            month           INTEGER NOT NULL,
            day             INTEGER NOT NULL,
            category        TEXT,
            parent          TEXT,
            notes           TEXT,
            import_source   TEXT,
            created_at      TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)
    await db.execute("CREATE INDEX idx_birthdays_user_id ON birthdays(user_id)")

    # ── Sharing links ────────────────────────────────────────────────────
    await db.execute("""
        CREATE TABLE sharing_links (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            token           TEXT NOT NULL UNIQUE,
            user_id         INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            description     TEXT,
            is_active       INTEGER NOT NULL DEFAULT 1,
            expires_at      TEXT NOT NULL,
            created_at      TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)
    await db.execute("CREATE INDEX idx_sharing_links_user_id ON sharing_links(user_id)")
    await db.execute("CREATE INDEX idx_sharing_links_expires_at ON sharing_links(expires_at)")

    # ── Birthday submissions ─────────────────────────────────────────────
    await db.execute("""
        CREATE TABLE birthday_submissions (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            sharing_link_id  INTEGER NOT NULL REFERENCES sharing_links(id) ON DELETE CASCADE,
            name             TEXT NOT NULL,
            year             INTEGER,
            month            INTEGER NOT NULL,
            day              INTEGER NOT NULL,
            category         TEXT,
            notes            TEXT,
            submitter_name   TEXT,
            submitter_email  TEXT,
            relationship     TEXT,
            submitter_ip     TEXT,
            status           TEXT NOT NULL DEFAULT 'PENDING'
                             CHECK (status IN ('PENDING', 'IMPORTED', 'REJECTED')),
            created_at       TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)
    await db.execute(
        "CREATE INDEX idx_submissions_link ON birthday_submissions(sharing_link_id)"
    )
    await db.execute("CREATE INDEX idx_submissions_status ON birthday_submissions(status)")
    await db.execute(
        "CREATE INDEX idx_submissions_created_at ON birthday_submissions(created_at)"
    )
    await db.execute("CREATE INDEX idx_submissions_ip ON birthday_submissions(submitter_ip)")

    # ── Notification preferences ─────────────────────────────────────────
    # user_id carries no foreign key: rows left behind by deleted users are
    # removed by the orphaned-data cleanup job.
    await db.execute("""
        CREATE TABLE notification_preferences (
            id                     INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id                INTEGER NOT NULL UNIQUE,
            email_notifications    INTEGER NOT NULL DEFAULT 1,
            summary_notifications  INTEGER NOT NULL DEFAULT 0,
            birthday_reminders     INTEGER NOT NULL DEFAULT 0,
            updated_at             TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """)

    await db.commit()
