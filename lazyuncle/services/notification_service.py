"""Owner notifications: preferences, message bodies and dispatch.

Notifications are best effort. ``queue_notification`` never raises; a send
that fails is parked on an in-process retry list that the background
notification sweep drains.
"""

import html
import logging
from dataclasses import dataclass, field

from lazyuncle import clock
from lazyuncle.database import get_db
from lazyuncle.services.birthday_service import format_date
from lazyuncle.services.email_transport import send_email
from lazyuncle.services.unsubscribe import build_unsubscribe_url

logger = logging.getLogger(__name__)

SUBMISSION = "SUBMISSION"
SUMMARY = "SUMMARY"
MAX_SEND_ATTEMPTS = 3

DEFAULT_PREFERENCES = {
    "email_notifications": True,
    "summary_notifications": False,
    "birthday_reminders": False,
}


@dataclass
class PendingNotification:
    user_id: int
    kind: str
    data: dict | list
    attempts: int = 1
    queued_at: str = field(default_factory=clock.now_db)


_retry_queue: list[PendingNotification] = []


# ── Preferences ──────────────────────────────────────────────────────────────


async def get_user_notification_preferences(user_id: int) -> dict:
    """Stored preferences, or the defaults if there is no row or the read fails."""
    try:
        db = await get_db()
        cursor = await db.execute(
            """SELECT email_notifications, summary_notifications, birthday_reminders
               FROM notification_preferences WHERE user_id = ?""",
            (user_id,),
        )
        row = await cursor.fetchone()
    except Exception:
        logger.exception("Failed to load notification preferences for user %d", user_id)
        return dict(DEFAULT_PREFERENCES)

    if row is None:
        return dict(DEFAULT_PREFERENCES)
    return {
        "email_notifications": bool(row[0]),
        "summary_notifications": bool(row[1]),
        "birthday_reminders": bool(row[2]),
    }


async def update_notification_preferences(user_id: int, **changes) -> dict:
    """Upsert the given preference fields; unspecified fields keep their value."""
    unknown = set(changes) - set(DEFAULT_PREFERENCES)
    if unknown:
        raise ValueError(f"Unknown preference fields: {', '.join(sorted(unknown))}")

    current = await get_user_notification_preferences(user_id)
    current.update({k: bool(v) for k, v in changes.items() if v is not None})

    db = await get_db()
    await db.execute(
        """INSERT INTO notification_preferences
               (user_id, email_notifications, summary_notifications, birthday_reminders, updated_at)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT(user_id) DO UPDATE SET
               email_notifications = excluded.email_notifications,
               summary_notifications = excluded.summary_notifications,
               birthday_reminders = excluded.birthday_reminders,
               updated_at = excluded.updated_at""",
        (
            user_id,
            int(current["email_notifications"]),
            int(current["summary_notifications"]),
            int(current["birthday_reminders"]),
            clock.now_db(),
        ),
    )
    await db.commit()
    return current


async def disable_preference_if_present(user_id: int, column: str) -> bool:
    """Switch one preference off, only if the user already has a row.

    Without a row the defaults apply; the unsubscribe page leaves that alone.
    """
    if column not in DEFAULT_PREFERENCES:
        raise ValueError(f"Unknown preference field: {column}")
    db = await get_db()
    cursor = await db.execute(
        f"UPDATE notification_preferences SET {column} = 0, updated_at = ? WHERE user_id = ?",
        (clock.now_db(), user_id),
    )
    await db.commit()
    return cursor.rowcount > 0


async def _get_user(user_id: int) -> dict | None:
    db = await get_db()
    cursor = await db.execute("SELECT id, email, name FROM users WHERE id = ?", (user_id,))
    row = await cursor.fetchone()
    if row is None:
        return None
    return {"id": row[0], "email": row[1], "name": row[2]}


# ── Message bodies ───────────────────────────────────────────────────────────


def _footer_text(unsubscribe_url: str) -> str:
    return (
        "Best regards,\n"
        "The Lazy Uncle Team\n\n"
        f"Unsubscribe: {unsubscribe_url}"
    )


def _footer_html(unsubscribe_url: str) -> str:
    return f"""
        <p style="color: #666; font-size: 14px;">
          Best regards,<br>
          The Lazy Uncle Team
        </p>
        <p style="color: #999; font-size: 12px;">
          <a href="{html.escape(unsubscribe_url)}">Unsubscribe from these emails</a>
        </p>"""


def build_submission_email(
    submission: dict, user_name: str | None, unsubscribe_url: str
) -> tuple[str, str]:
    """Return ``(text, html)`` for a single new submission."""
    greeting = f"Hi {user_name}" if user_name else "Hello"
    submitter = submission.get("submitter_name")
    submitter_info = f"from {submitter}" if submitter else "from someone"
    relationship = submission.get("relationship")
    relationship_info = f" ({relationship})" if relationship else ""
    description = submission.get("sharing_link_description")
    link_info = f' via your "{description}" sharing link' if description else ""
    notes = submission.get("notes")
    notes_section = f"\n\nNotes: {notes}" if notes else ""

    text = (
        f"{greeting},\n\n"
        f"You've received a new birthday submission {submitter_info}{link_info}!\n\n"
        "Birthday Details:\n"
        f"- Name: {submission['birthday_name']}{relationship_info}\n"
        f"- Date: {submission['birthday_date']}{notes_section}\n\n"
        "You can review and import this birthday by visiting your Lazy Uncle dashboard.\n\n"
        + _footer_text(unsubscribe_url)
    )

    esc = html.escape
    notes_html = f"<p><strong>Notes:</strong> {esc(notes)}</p>" if notes else ""
    body = f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #333;">New Birthday Submission</h2>
        <p>{esc(greeting)},</p>
        <p>You've received a new birthday submission {esc(submitter_info)}{esc(link_info)}!</p>
        <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
          <h3 style="margin-top: 0; color: #555;">Birthday Details</h3>
          <p><strong>Name:</strong> {esc(submission['birthday_name'])}{esc(relationship_info)}</p>
          <p><strong>Date:</strong> {esc(submission['birthday_date'])}</p>
          {notes_html}
        </div>
        <p>You can review and import this birthday by visiting your Lazy Uncle dashboard.</p>
        {_footer_html(unsubscribe_url)}
      </div>"""
    return text, body


def build_summary_email(
    submissions: list[dict], user_name: str | None, unsubscribe_url: str
) -> tuple[str, str]:
    """Return ``(text, html)`` listing several pending submissions."""
    greeting = f"Hi {user_name}" if user_name else "Hello"
    count = len(submissions)

    def _line(sub: dict) -> str:
        submitter = sub.get("submitter_name")
        suffix = f" from {submitter}" if submitter else ""
        return f"{sub['birthday_name']} ({sub['birthday_date']}){suffix}"

    listing = "\n".join(f"{i}. {_line(sub)}" for i, sub in enumerate(submissions, start=1))
    text = (
        f"{greeting},\n\n"
        f"You have {count} new birthday submissions waiting for review!\n\n"
        f"{listing}\n\n"
        "You can review and import these birthdays by visiting your Lazy Uncle dashboard.\n\n"
        + _footer_text(unsubscribe_url)
    )

    items = "".join(f"<li>{html.escape(_line(sub))}</li>" for sub in submissions)
    body = f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #333;">{count} New Birthday Submissions</h2>
        <p>{html.escape(greeting)},</p>
        <p>You have {count} new birthday submissions waiting for review!</p>
        <div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
          <h3 style="margin-top: 0; color: #555;">Submissions</h3>
          <ol style="margin: 0; padding-left: 20px;">{items}</ol>
        </div>
        <p>You can review and import these birthdays by visiting your Lazy Uncle dashboard.</p>
        {_footer_html(unsubscribe_url)}
      </div>"""
    return text, body


# ── Sending ──────────────────────────────────────────────────────────────────


async def send_submission_notification(user_id: int, submission: dict) -> bool:
    """Email the owner about one submission. Returns True if an email was sent.

    Transport errors propagate to the caller.
    """
    preferences = await get_user_notification_preferences(user_id)
    if not preferences["email_notifications"]:
        logger.info("Notifications disabled for user %d", user_id)
        return False

    user = await _get_user(user_id)
    if not user or not user["email"]:
        logger.error("No email found for user %d", user_id)
        return False

    text, body = build_submission_email(
        submission, user["name"], build_unsubscribe_url(user_id, "submission")
    )
    await send_email(user["email"], "New Birthday Submission Received", body, text)
    logger.info("Submission notification sent to user %d", user_id)
    return True


async def send_summary_notification(user_id: int, submissions: list[dict]) -> bool:
    """Email the owner a digest of ``submissions``. Returns True if sent."""
    if not submissions:
        return False

    preferences = await get_user_notification_preferences(user_id)
    if not preferences["email_notifications"] or not preferences["summary_notifications"]:
        return False

    user = await _get_user(user_id)
    if not user or not user["email"]:
        logger.error("No email found for user %d", user_id)
        return False

    text, body = build_summary_email(
        submissions, user["name"], build_unsubscribe_url(user_id, "summary")
    )
    await send_email(user["email"], f"{len(submissions)} New Birthday Submissions", body, text)
    logger.info("Summary notification sent to user %d", user_id)
    return True


async def _dispatch(user_id: int, kind: str, data) -> bool:
    if kind == SUBMISSION:
        return await send_submission_notification(user_id, data)
    if kind == SUMMARY:
        return await send_summary_notification(user_id, data)
    raise ValueError(f"Unknown notification type: {kind}")


async def queue_notification(user_id: int, kind: str, data) -> None:
    """Send now; on failure keep the notification for a later retry."""
    try:
        await _dispatch(user_id, kind, data)
    except ValueError:
        logger.exception("Dropping notification for user %d", user_id)
    except Exception:
        logger.exception("Failed to send %s notification to user %d", kind, user_id)
        _retry_queue.append(PendingNotification(user_id=user_id, kind=kind, data=data))


def pending_notification_count() -> int:
    return len(_retry_queue)


def clear_pending_notifications() -> None:
    _retry_queue.clear()


async def process_pending_notifications() -> int:
    """Retry parked notifications. Returns how many were delivered."""
    if not _retry_queue:
        return 0

    batch = list(_retry_queue)
    _retry_queue.clear()
    delivered = 0
    for item in batch:
        try:
            await _dispatch(item.user_id, item.kind, item.data)
            delivered += 1
        except Exception as e:
            item.attempts += 1
            if item.attempts < MAX_SEND_ATTEMPTS:
                _retry_queue.append(item)
            else:
                logger.error(
                    "Giving up on %s notification for user %d after %d attempts: %s",
                    item.kind, item.user_id, item.attempts, e,
                )
    return delivered


async def send_daily_summaries() -> int:
    """Send each opted-in owner a digest of their pending submissions.

    Returns the number of users emailed.
    """
    db = await get_db()
    cursor = await db.execute(
        """SELECT l.user_id, s.id, s.name, s.year, s.month, s.day, s.submitter_name
           FROM birthday_submissions s
           JOIN sharing_links l ON l.id = s.sharing_link_id
           JOIN notification_preferences p ON p.user_id = l.user_id
           WHERE s.status = 'PENDING'
             AND p.summary_notifications = 1
             AND p.email_notifications = 1
           ORDER BY l.user_id, s.created_at, s.id"""
    )
    by_user: dict[int, list[dict]] = {}
    for user_id, sub_id, name, year, month, day, submitter_name in await cursor.fetchall():
        by_user.setdefault(user_id, []).append({
            "submission_id": sub_id,
            "birthday_name": name,
            "birthday_date": format_date(year, month, day),
            "submitter_name": submitter_name,
        })

    sent = 0
    for user_id, submissions in by_user.items():
        try:
            if await send_summary_notification(user_id, submissions):
                sent += 1
        except Exception:
            logger.exception("Failed to send daily summary to user %d", user_id)
            _retry_queue.append(
                PendingNotification(user_id=user_id, kind=SUMMARY, data=submissions)
            )
    logger.info("Processed summary notifications for %d users", len(by_user))
    return sent
