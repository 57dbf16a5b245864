"""Submission service: public intake, duplicate detection and moderation.

A submission moves one way only: PENDING -> IMPORTED or PENDING -> REJECTED.
Moderation queries always filter on ``status = 'PENDING'`` and on the owner
of the submission's sharing link, so "missing", "not yours" and "already
processed" are reported identically.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum

from lazyuncle import clock
from lazyuncle.database import get_db, write_lock
from lazyuncle.services import input_validator, sharing_service
from lazyuncle.services.birthday_service import create_birthday, format_date

logger = logging.getLogger(__name__)

MAX_SUBMISSIONS_PER_HOUR = 10
# Used when flagging pending submissions as likely duplicates.
DUPLICATE_SIMILARITY_THRESHOLD = 0.8
# Used for the duplicate list shown while reviewing a single submission.
UI_DUPLICATE_THRESHOLD = 0.7

NAME_WEIGHT = 0.6
DATE_WEIGHT = 0.4
DATE_SCORE_EXACT = 0.4
DATE_SCORE_YEAR_UNKNOWN = 0.35
DATE_SCORE_YEAR_DIFFERS = 0.2

MSG_INVALID_LINK = "Invalid or expired sharing link"
MSG_LINK_RATE_LIMITED = "Too many submissions in the last hour. Please try again later."
MSG_PROCESSING_FAILED = "Failed to process submission. Please try again."
MSG_NOT_FOUND = "Submission not found or already processed"

# YYYY-MM-DD, or --MM-DD when the year is unknown
_CANDIDATE_DATE_RE = re.compile(r"^(?:(\d{4})|-)-(\d{2})-(\d{2})$")


class SubmissionStatus(str, Enum):
    PENDING = "PENDING"
    IMPORTED = "IMPORTED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self is not SubmissionStatus.PENDING

    def can_transition_to(self, target: "SubmissionStatus") -> bool:
        return self is SubmissionStatus.PENDING and target.is_terminal


@dataclass
class SubmissionResult:
    success: bool
    submission_id: int | None = None
    errors: list[str] = field(default_factory=list)


@dataclass
class ModerationResult:
    success: bool
    birthday_id: int | None = None
    errors: list[str] = field(default_factory=list)


@dataclass
class BulkResult:
    success: bool
    processed_count: int = 0
    failed_count: int = 0
    failed_ids: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


# ── Similarity ───────────────────────────────────────────────────────────────


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    current[j - 1] + 1,
                    previous[j] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def name_similarity(a: str, b: str) -> float:
    """1 - distance / longer length, on lower-cased names."""
    a, b = a.lower(), b.lower()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1 - levenshtein(a, b) / max(len(a), len(b))


def date_score(
    year_a: int | None, month_a: int, day_a: int,
    year_b: int | None, month_b: int, day_b: int,
) -> float:
    if month_a != month_b or day_a != day_b:
        return 0.0
    if year_a is None or year_b is None:
        return DATE_SCORE_YEAR_UNKNOWN
    if year_a == year_b:
        return DATE_SCORE_EXACT
    return DATE_SCORE_YEAR_DIFFERS


def calculate_similarity(candidate: dict, existing: dict) -> float:
    """Weighted similarity of two records with ``name``/``year``/``month``/``day``."""
    score = name_similarity(candidate["name"], existing["name"]) * NAME_WEIGHT
    score += date_score(
        candidate.get("year"), candidate["month"], candidate["day"],
        existing.get("year"), existing["month"], existing["day"],
    )
    return score


def _normalize_candidate(candidate: dict) -> dict:
    """Accept either a ``date`` string or ``year``/``month``/``day`` keys."""
    if "month" in candidate and "day" in candidate:
        return candidate
    date_str = candidate.get("date") or ""
    match = _CANDIDATE_DATE_RE.match(date_str)
    if match is None:
        raise ValueError(f"Invalid date {date_str!r}, expected YYYY-MM-DD or --MM-DD")
    year, month, day = match.groups()
    return {
        **candidate,
        "year": int(year) if year else None,
        "month": int(month),
        "day": int(day),
    }


async def _load_birthdays_for_matching(user_id: int) -> list[dict]:
    db = await get_db()
    cursor = await db.execute(
        "SELECT id, name, year, month, day, category FROM birthdays WHERE user_id = ?",
        (user_id,),
    )
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in await cursor.fetchall()]


def _match_birthdays(candidate: dict, birthdays: list[dict], threshold: float) -> list[dict]:
    matches = []
    for birthday in birthdays:
        similarity = calculate_similarity(candidate, birthday)
        if similarity >= threshold:
            matches.append({
                "id": birthday["id"],
                "name": birthday["name"],
                "date": format_date(birthday["year"], birthday["month"], birthday["day"]),
                "category": birthday["category"],
                "similarity": round(similarity, 4),
            })
    matches.sort(key=lambda m: m["similarity"], reverse=True)
    return matches


async def detect_duplicates(user_id: int, candidate: dict) -> list[dict]:
    """Existing birthdays of ``user_id`` resembling ``candidate``, best first."""
    birthdays = await _load_birthdays_for_matching(user_id)
    return _match_birthdays(_normalize_candidate(candidate), birthdays, UI_DUPLICATE_THRESHOLD)


# ── Intake ───────────────────────────────────────────────────────────────────


async def _count_recent_link_submissions(sharing_link_id: int) -> int:
    db = await get_db()
    cursor = await db.execute(
        """SELECT COUNT(*) FROM birthday_submissions
           WHERE sharing_link_id = ? AND created_at >= ?""",
        (sharing_link_id, clock.ago_db(hours=1)),
    )
    (count,) = await cursor.fetchone()
    return count


async def process_submission(
    token: str,
    data: dict,
    submitter_ip: str | None = None,
) -> SubmissionResult:
    """Validate and store a public submission, then notify the link owner."""
    try:
        link = await sharing_service.validate_sharing_link(token)
        if link is None:
            return SubmissionResult(success=False, errors=[MSG_INVALID_LINK])

        validation = input_validator.validate_birthday_submission({**data, "token": token})
        if not validation.is_valid:
            return SubmissionResult(success=False, errors=validation.errors)
        clean = validation.sanitized_data

        if await _count_recent_link_submissions(link["id"]) >= MAX_SUBMISSIONS_PER_HOUR:
            return SubmissionResult(success=False, errors=[MSG_LINK_RATE_LIMITED])

        db = await get_db()
        async with write_lock():
            cursor = await db.execute(
                """INSERT INTO birthday_submissions
                       (sharing_link_id, name, year, month, day, category, notes,
                        submitter_name, submitter_email, relationship, submitter_ip,
                        status, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    link["id"], clean.name, clean.year, clean.month, clean.day,
                    clean.category, clean.notes, clean.submitter_name,
                    clean.submitter_email, clean.relationship, submitter_ip,
                    SubmissionStatus.PENDING.value, clock.now_db(),
                ),
            )
            await db.commit()
        submission_id = cursor.lastrowid
    except Exception:
        logger.exception("Error processing submission for link token")
        return SubmissionResult(success=False, errors=[MSG_PROCESSING_FAILED])

    # The submission is stored; a notification failure must not undo it.
    try:
        from lazyuncle.services.notification_service import queue_notification

        await queue_notification(
            link["user_id"],
            "SUBMISSION",
            {
                "submission_id": submission_id,
                "submitter_name": clean.submitter_name,
                "birthday_name": clean.name,
                "birthday_date": clean.date,
                "relationship": clean.relationship,
                "notes": clean.notes,
                "sharing_link_description": link["description"],
            },
        )
    except Exception:
        logger.exception("Failed to queue notification for submission %d", submission_id)

    return SubmissionResult(success=True, submission_id=submission_id)


# ── Moderation ───────────────────────────────────────────────────────────────


async def get_owned_submission(submission_id: int, user_id: int) -> dict | None:
    """A submission of any status, provided ``user_id`` owns its link."""
    db = await get_db()
    cursor = await db.execute(
        """SELECT s.*, l.description AS sharing_link_description
           FROM birthday_submissions s
           JOIN sharing_links l ON l.id = s.sharing_link_id
           WHERE s.id = ? AND l.user_id = ?""",
        (submission_id, user_id),
    )
    columns = [desc[0] for desc in cursor.description]
    row = await cursor.fetchone()
    if row is None:
        return None
    submission = dict(zip(columns, row))
    submission["date"] = format_date(submission["year"], submission["month"], submission["day"])
    return submission


async def _claim(db, submission_id: int, user_id: int, status: SubmissionStatus) -> bool:
    """Move one of the owner's PENDING submissions to ``status``."""
    cursor = await db.execute(
        """UPDATE birthday_submissions SET status = ?
           WHERE id = ? AND status = ?
             AND sharing_link_id IN (SELECT id FROM sharing_links WHERE user_id = ?)""",
        (status.value, submission_id, SubmissionStatus.PENDING.value, user_id),
    )
    return cursor.rowcount == 1


async def import_submission(submission_id: int, user_id: int) -> ModerationResult:
    """Copy a pending submission into the owner's birthdays.

    The status flip and the new birthday commit together. Whoever claims the
    submission first wins; a concurrent import or reject sees it as missing.
    """
    db = await get_db()
    async with write_lock():
        try:
            if not await _claim(db, submission_id, user_id, SubmissionStatus.IMPORTED):
                return ModerationResult(success=False, errors=[MSG_NOT_FOUND])
            submission = await get_owned_submission(submission_id, user_id)
            birthday = await create_birthday(
                user_id=user_id,
                name=submission["name"],
                year=submission["year"],
                month=submission["month"],
                day=submission["day"],
                category=submission["category"],
                notes=submission["notes"],
                import_source="sharing",
                commit=False,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Error importing submission %d", submission_id)
            return ModerationResult(
                success=False, errors=["Failed to import submission. Please try again."]
            )

    logger.info("User %d imported submission %d", user_id, submission_id)
    return ModerationResult(success=True, birthday_id=birthday["id"])


async def reject_submission(submission_id: int, user_id: int) -> ModerationResult:
    db = await get_db()
    async with write_lock():
        try:
            claimed = await _claim(db, submission_id, user_id, SubmissionStatus.REJECTED)
            await db.commit()
        except Exception:
            logger.exception("Error rejecting submission %d", submission_id)
            return ModerationResult(
                success=False, errors=["Failed to reject submission. Please try again."]
            )

    if not claimed:
        return ModerationResult(success=False, errors=[MSG_NOT_FOUND])
    return ModerationResult(success=True)


async def _bulk(action, submission_ids: list[int], user_id: int) -> BulkResult:
    result = BulkResult(success=True)
    for submission_id in submission_ids:
        outcome = await action(submission_id, user_id)
        if outcome.success:
            result.processed_count += 1
        else:
            result.failed_ids.append(submission_id)
            result.errors.extend(f"{submission_id}: {error}" for error in outcome.errors)
    result.failed_count = len(result.failed_ids)
    result.success = result.failed_count == 0
    return result


async def bulk_import_submissions(submission_ids: list[int], user_id: int) -> BulkResult:
    """Import each id in order; earlier successes stand if a later one fails."""
    return await _bulk(import_submission, submission_ids, user_id)


async def bulk_reject_submissions(submission_ids: list[int], user_id: int) -> BulkResult:
    return await _bulk(reject_submission, submission_ids, user_id)


async def get_pending_submissions(user_id: int, page: int = 1, limit: int = 20) -> dict:
    """One page of the owner's pending submissions, newest first.

    Each row carries ``possible_duplicate`` when an existing birthday scores
    at or above ``DUPLICATE_SIMILARITY_THRESHOLD``.
    """
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    db = await get_db()

    cursor = await db.execute(
        """SELECT COUNT(*) FROM birthday_submissions s
           JOIN sharing_links l ON l.id = s.sharing_link_id
           WHERE l.user_id = ? AND s.status = ?""",
        (user_id, SubmissionStatus.PENDING.value),
    )
    (total,) = await cursor.fetchone()

    cursor = await db.execute(
        """SELECT s.*, l.description AS sharing_link_description
           FROM birthday_submissions s
           JOIN sharing_links l ON l.id = s.sharing_link_id
           WHERE l.user_id = ? AND s.status = ?
           ORDER BY s.created_at DESC, s.id DESC
           LIMIT ? OFFSET ?""",
        (user_id, SubmissionStatus.PENDING.value, limit, (page - 1) * limit),
    )
    columns = [desc[0] for desc in cursor.description]
    submissions = [dict(zip(columns, row)) for row in await cursor.fetchall()]

    birthdays = await _load_birthdays_for_matching(user_id) if submissions else []
    for submission in submissions:
        submission["date"] = format_date(
            submission["year"], submission["month"], submission["day"]
        )
        submission["possible_duplicate"] = bool(
            _match_birthdays(submission, birthdays, DUPLICATE_SIMILARITY_THRESHOLD)
        )

    total_pages = math.ceil(total / limit) if total else 0
    return {
        "submissions": submissions,
        "total_count": total,
        "has_next_page": page < total_pages,
        "has_previous_page": page > 1,
        "current_page": page,
        "total_pages": total_pages,
    }


async def get_submission_duplicates(submission_id: int, user_id: int) -> list[dict]:
    """Duplicate candidates for one of the owner's submissions.

    Raises LookupError when the submission is missing or belongs to someone
    else.
    """
    submission = await get_owned_submission(submission_id, user_id)
    if submission is None:
        raise LookupError("Submission not found")
    return await detect_duplicates(user_id, submission)


async def cleanup_old_rejected_submissions(days_old: int = 30) -> int:
    """Delete rejected submissions older than ``days_old`` days.

    Returns the number deleted, or 0 if the delete failed.
    """
    try:
        db = await get_db()
        cursor = await db.execute(
            "DELETE FROM birthday_submissions WHERE status = ? AND created_at < ?",
            (SubmissionStatus.REJECTED.value, clock.ago_db(days=days_old)),
        )
        await db.commit()
        return cursor.rowcount
    except Exception:
        logger.exception("Error cleaning up old rejected submissions")
        return 0
