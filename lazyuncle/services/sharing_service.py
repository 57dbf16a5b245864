"""Sharing link service: issue, validate, revoke and expire submission links."""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from lazyuncle import clock
from lazyuncle.config import settings
from lazyuncle.database import get_db

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_HOURS = 168  # 7 days
TOKEN_BYTES = 32
MAX_ACTIVE_LINKS_PER_USER = 5
DAILY_GENERATION_LIMIT = 3
MAX_TOKEN_ATTEMPTS = 10

# Status codes reported by get_sharing_link_status
INVALID_TOKEN = "INVALID_TOKEN"
INACTIVE_LINK = "INACTIVE_LINK"
EXPIRED_LINK = "EXPIRED_LINK"


@dataclass
class LinkQuota:
    can_create: bool
    active_links_count: int
    daily_links_count: int
    reason: str | None = None


def _generate_token() -> str:
    """32 random bytes, base64url encoded without padding."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def build_share_url(token: str) -> str:
    return f"{settings.base_url}/share/{token}"


def _row_to_link(columns: list[str], row) -> dict:
    link = dict(zip(columns, row))
    link["is_active"] = bool(link["is_active"])
    link["url"] = build_share_url(link["token"])
    return link


def is_usable(link: dict) -> bool:
    """A link accepts submissions iff it is active and not yet expired."""
    return bool(link["is_active"]) and link["expires_at"] > clock.now_db()


# ── Quotas ───────────────────────────────────────────────────────────────────


async def _count_active_links(user_id: int) -> int:
    db = await get_db()
    cursor = await db.execute(
        """SELECT COUNT(*) FROM sharing_links
           WHERE user_id = ? AND is_active = 1 AND expires_at > ?""",
        (user_id, clock.now_db()),
    )
    (count,) = await cursor.fetchone()
    return count


async def _count_links_created_today(user_id: int) -> int:
    db = await get_db()
    start = clock.local_midnight_utc()
    end = start + timedelta(days=1)
    cursor = await db.execute(
        """SELECT COUNT(*) FROM sharing_links
           WHERE user_id = ? AND created_at >= ? AND created_at < ?""",
        (user_id, clock.to_db(start), clock.to_db(end)),
    )
    (count,) = await cursor.fetchone()
    return count


async def can_create_sharing_link(user_id: int) -> LinkQuota:
    """Read-only precheck of the per-user link quotas."""
    active = await _count_active_links(user_id)
    if active >= MAX_ACTIVE_LINKS_PER_USER:
        return LinkQuota(
            can_create=False,
            active_links_count=active,
            daily_links_count=0,
            reason=f"Maximum of {MAX_ACTIVE_LINKS_PER_USER} active sharing links allowed per user",
        )

    daily = await _count_links_created_today(user_id)
    if daily >= DAILY_GENERATION_LIMIT:
        return LinkQuota(
            can_create=False,
            active_links_count=active,
            daily_links_count=daily,
            reason=f"Daily limit of {DAILY_GENERATION_LIMIT} sharing links exceeded",
        )

    return LinkQuota(can_create=True, active_links_count=active, daily_links_count=daily)


# ── Lifecycle ────────────────────────────────────────────────────────────────


async def create_sharing_link(
    user_id: int,
    description: str | None = None,
    expiration_hours: int = DEFAULT_EXPIRATION_HOURS,
) -> dict:
    """Create a sharing link for ``user_id``.

    Raises ValueError when a quota is exhausted or no unique token could be
    generated.
    """
    quota = await can_create_sharing_link(user_id)
    if not quota.can_create:
        raise ValueError(quota.reason)

    db = await get_db()

    token = None
    for _ in range(MAX_TOKEN_ATTEMPTS):
        candidate = _generate_token()
        cursor = await db.execute(
            "SELECT 1 FROM sharing_links WHERE token = ?", (candidate,)
        )
        if await cursor.fetchone() is None:
            token = candidate
            break
    if token is None:
        raise ValueError("Failed to generate unique token after multiple attempts")

    now = clock.utcnow()
    expires_at = now + timedelta(hours=expiration_hours)

    cursor = await db.execute(
        """INSERT INTO sharing_links (token, user_id, description, is_active, expires_at, created_at)
           VALUES (?, ?, ?, 1, ?, ?)""",
        (token, user_id, description or None, clock.to_db(expires_at), clock.to_db(now)),
    )
    await db.commit()

    logger.info("Created sharing link %d for user %d", cursor.lastrowid, user_id)
    return await get_sharing_link(cursor.lastrowid)


async def get_sharing_link(link_id: int) -> dict | None:
    """Get a sharing link by ID, without an ownership check."""
    db = await get_db()
    cursor = await db.execute("SELECT * FROM sharing_links WHERE id = ?", (link_id,))
    columns = [desc[0] for desc in cursor.description]
    row = await cursor.fetchone()
    if row is None:
        return None
    return _row_to_link(columns, row)


async def get_sharing_link_by_id(link_id: int, user_id: int) -> dict | None:
    """Get a sharing link only if ``user_id`` owns it."""
    db = await get_db()
    cursor = await db.execute(
        "SELECT * FROM sharing_links WHERE id = ? AND user_id = ?", (link_id, user_id)
    )
    columns = [desc[0] for desc in cursor.description]
    row = await cursor.fetchone()
    if row is None:
        return None
    return _row_to_link(columns, row)


async def _get_link_with_owner(token: str) -> dict | None:
    db = await get_db()
    cursor = await db.execute(
        """SELECT l.*, u.name AS owner_name, u.email AS owner_email
           FROM sharing_links l
           JOIN users u ON u.id = l.user_id
           WHERE l.token = ?""",
        (token,),
    )
    columns = [desc[0] for desc in cursor.description]
    row = await cursor.fetchone()
    if row is None:
        return None
    return _row_to_link(columns, row)


async def _deactivate(link_id: int) -> None:
    db = await get_db()
    await db.execute("UPDATE sharing_links SET is_active = 0 WHERE id = ?", (link_id,))
    await db.commit()


async def validate_sharing_link(token: str | None) -> dict | None:
    """Return the usable link for ``token`` (with owner fields) or None.

    An expired link that is still flagged active is deactivated on the way.
    """
    if not token or not isinstance(token, str):
        return None

    link = await _get_link_with_owner(token)
    if link is None or not link["is_active"]:
        return None

    if link["expires_at"] <= clock.now_db():
        await _deactivate(link["id"])
        logger.info("Sharing link %d expired, deactivated", link["id"])
        return None

    return link


async def get_sharing_link_status(token: str) -> dict:
    """Describe why a token is or isn't usable, for the public share page."""
    link = await _get_link_with_owner(token) if token else None
    if link is None:
        return {
            "is_valid": False,
            "error": INVALID_TOKEN,
            "message": "This sharing link is invalid or does not exist.",
            "sharing_link": None,
        }

    if link["is_active"] and link["expires_at"] <= clock.now_db():
        await _deactivate(link["id"])
        return {
            "is_valid": False,
            "error": EXPIRED_LINK,
            "message": "This sharing link has expired.",
            "sharing_link": None,
        }

    if not link["is_active"]:
        return {
            "is_valid": False,
            "error": INACTIVE_LINK,
            "message": "This sharing link is no longer active.",
            "sharing_link": None,
        }

    return {
        "is_valid": True,
        "error": None,
        "message": None,
        "sharing_link": {
            "id": link["id"],
            "token": link["token"],
            "description": link["description"],
            "expires_at": link["expires_at"],
            "owner_name": link["owner_name"],
        },
    }


async def deactivate_sharing_link_by_token(token: str) -> bool:
    """Deactivate the link for ``token``. Returns True if a row changed."""
    db = await get_db()
    cursor = await db.execute(
        "UPDATE sharing_links SET is_active = 0 WHERE token = ? AND is_active = 1",
        (token,),
    )
    await db.commit()
    return cursor.rowcount > 0


async def revoke_sharing_link(link_id: int, user_id: int) -> dict | None:
    """Deactivate a link owned by ``user_id``; None if missing or not owned."""
    link = await get_sharing_link_by_id(link_id, user_id)
    if link is None:
        return None
    await _deactivate(link_id)
    logger.info("User %d revoked sharing link %d", user_id, link_id)
    return await get_sharing_link(link_id)


async def cleanup_expired_links() -> int:
    """Deactivate every active link past its expiry. Returns rows changed."""
    db = await get_db()
    cursor = await db.execute(
        "UPDATE sharing_links SET is_active = 0 WHERE is_active = 1 AND expires_at <= ?",
        (clock.now_db(),),
    )
    await db.commit()
    return cursor.rowcount


# ── Listings ─────────────────────────────────────────────────────────────────


async def _list_links(where: str, params: tuple) -> list[dict]:
    db = await get_db()
    cursor = await db.execute(
        f"""SELECT l.*,
                   (SELECT COUNT(*) FROM birthday_submissions s
                    WHERE s.sharing_link_id = l.id) AS submission_count
            FROM sharing_links l
            WHERE {where}
            ORDER BY l.created_at DESC, l.id DESC""",
        params,
    )
    columns = [desc[0] for desc in cursor.description]
    return [_row_to_link(columns, row) for row in await cursor.fetchall()]


async def get_user_sharing_links(user_id: int) -> list[dict]:
    """All links of a user, newest first, with submission counts."""
    return await _list_links("l.user_id = ?", (user_id,))


async def get_active_sharing_links(user_id: int) -> list[dict]:
    return await _list_links(
        "l.user_id = ? AND l.is_active = 1 AND l.expires_at > ?",
        (user_id, clock.now_db()),
    )


async def count_recent_links(user_id: int, minutes: int) -> int:
    """Links created by ``user_id`` in the last ``minutes`` minutes."""
    db = await get_db()
    cursor = await db.execute(
        "SELECT COUNT(*) FROM sharing_links WHERE user_id = ? AND created_at >= ?",
        (user_id, clock.ago_db(minutes=minutes)),
    )
    (count,) = await cursor.fetchone()
    return count
