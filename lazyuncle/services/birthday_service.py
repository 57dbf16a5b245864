"""Birthday CRUD operations."""

from lazyuncle import clock
from lazyuncle.database import get_db


def format_date(year: int | None, month: int, day: int) -> str:
    """``YYYY-MM-DD``, or ``--MM-DD`` when the year is unknown."""
    if year is None:
        return f"--{month:02d}-{day:02d}"
    return f"{year:04d}-{month:02d}-{day:02d}"


def _row_to_birthday(columns: list[str], row) -> dict:
    birthday = dict(zip(columns, row))
    birthday["date"] = format_date(birthday["year"], birthday["month"], birthday["day"])
    return birthday


async def create_birthday(
    user_id: int,
    name: str,
    month: int,
    day: int,
    year: int | None = None,
    category: str | None = None,
    parent: str | None = None,
    notes: str | None = None,
    import_source: str | None = None,
    commit: bool = True,
) -> dict:
    """Create a birthday and return it."""
    db = await get_db()
    cursor = await db.execute(
        """INSERT INTO birthdays
               (user_id, name, year, month, day, category, parent, notes, import_source, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (user_id, name, year, month, day, category, parent, notes, import_source, clock.now_db()),
    )
    if commit:
        await db.commit()
    return await get_birthday(cursor.lastrowid, user_id)


async def get_birthday(birthday_id: int, user_id: int) -> dict | None:
    db = await get_db()
    cursor = await db.execute(
        "SELECT * FROM birthdays WHERE id = ? AND user_id = ?", (birthday_id, user_id)
    )
    columns = [desc[0] for desc in cursor.description]
    row = await cursor.fetchone()
    if row is None:
        return None
    return _row_to_birthday(columns, row)


async def list_birthdays(user_id: int) -> list[dict]:
    """All birthdays of a user in calendar order."""
    db = await get_db()
    cursor = await db.execute(
        """SELECT * FROM birthdays WHERE user_id = ?
           ORDER BY month, day, name COLLATE NOCASE""",
        (user_id,),
    )
    columns = [desc[0] for desc in cursor.description]
    return [_row_to_birthday(columns, row) for row in await cursor.fetchall()]


async def delete_birthday(birthday_id: int, user_id: int) -> bool:
    db = await get_db()
    cursor = await db.execute(
        "DELETE FROM birthdays WHERE id = ? AND user_id = ?", (birthday_id, user_id)
    )
    await db.commit()
    return cursor.rowcount > 0
