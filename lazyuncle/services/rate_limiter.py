"""Submission rate limiting.

Two layers:

* ``RateLimiter``: process-local fixed-window counters keyed by
  ``"{scope}:{identifier}"``. Counters are lost on restart and are not
  shared between processes.
* Database-derived checks that count ``birthday_submissions`` rows, so abuse
  that outlives the in-memory windows is still caught.
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta

from lazyuncle import clock
from lazyuncle.database import get_db

logger = logging.getLogger(__name__)

HOUR = 60 * 60
SWEEP_INTERVAL = 5 * 60

SUBMISSION_WINDOW = HOUR
SUBMISSION_MAX_REQUESTS = 10
LINK_WINDOW = HOUR
LINK_MAX_REQUESTS = 50

PERSISTENT_HOURLY_LIMIT = 20
PERSISTENT_DAILY_LIMIT = 100

SAME_EMAIL_HOURLY_LIMIT = 5


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: datetime
    retry_after: int | None = None


@dataclass
class PersistentLimitResult:
    allowed: bool
    reason: str | None = None


@dataclass
class SuspiciousActivityResult:
    suspicious: bool
    reason: str | None = None


class RateLimiter:
    """Fixed-window request counter.

    Bursts straddling a window boundary can reach twice the limit; that is
    the accepted cost of the fixed window.
    """

    def __init__(self, clock_fn=time.monotonic):
        self._clock = clock_fn
        # key -> [count, reset_at]
        self._windows: dict[str, list] = {}
        self._last_sweep = clock_fn()

    def check_limit(self, key: str, window_seconds: float, max_requests: int) -> RateLimitResult:
        now = self._clock()
        if now - self._last_sweep >= SWEEP_INTERVAL:
            self.cleanup()

        window = self._windows.get(key)
        if window is None or window[1] <= now:
            reset_at = now + window_seconds
            self._windows[key] = [1, reset_at]
            return RateLimitResult(
                allowed=True,
                remaining=max_requests - 1,
                reset_time=self._wall_time(reset_at - now),
            )

        window[0] += 1
        count, reset_at = window
        if count > max_requests:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_time=self._wall_time(reset_at - now),
                retry_after=math.ceil(reset_at - now),
            )

        return RateLimitResult(
            allowed=True,
            remaining=max_requests - count,
            reset_time=self._wall_time(reset_at - now),
        )

    def cleanup(self) -> int:
        """Drop every window whose reset time has passed."""
        now = self._clock()
        expired = [key for key, (_, reset_at) in self._windows.items() if reset_at <= now]
        for key in expired:
            del self._windows[key]
        self._last_sweep = now
        return len(expired)

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    def __len__(self) -> int:
        return len(self._windows)

    @staticmethod
    def _wall_time(seconds_from_now: float) -> datetime:
        return clock.utcnow() + timedelta(seconds=seconds_from_now)


# Global rate limiter instance
rate_limiter = RateLimiter()


def check_submission_rate_limit(ip_address: str) -> RateLimitResult:
    """Per-IP limit: 10 requests per hour."""
    return rate_limiter.check_limit(
        f"submission:{ip_address}", SUBMISSION_WINDOW, SUBMISSION_MAX_REQUESTS
    )


def check_link_submission_rate_limit(token: str) -> RateLimitResult:
    """Per-link limit: 50 submissions per hour."""
    return rate_limiter.check_limit(f"link:{token}", LINK_WINDOW, LINK_MAX_REQUESTS)


# ── Database-derived checks ──────────────────────────────────────────────────


async def check_persistent_rate_limit(ip_address: str) -> PersistentLimitResult:
    """Count stored submissions from ``ip_address`` over the last hour and day."""
    db = await get_db()

    cursor = await db.execute(
        """SELECT
               SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END),
               COUNT(*)
           FROM birthday_submissions
           WHERE submitter_ip = ? AND created_at >= ?""",
        (clock.ago_db(hours=1), ip_address, clock.ago_db(days=1)),
    )
    hourly, daily = await cursor.fetchone()
    hourly = hourly or 0

    if hourly > PERSISTENT_HOURLY_LIMIT:
        return PersistentLimitResult(
            allowed=False,
            reason="Too many submissions from this IP address. Please try again later.",
        )
    if daily > PERSISTENT_DAILY_LIMIT:
        return PersistentLimitResult(
            allowed=False,
            reason="Daily submission limit exceeded for this IP address.",
        )
    return PersistentLimitResult(allowed=True)


def _month_day(date_str: str) -> tuple[int, int] | None:
    try:
        _, month, day = (int(part) for part in date_str.strip().split("-"))
    except (AttributeError, ValueError):
        return None
    return month, day


async def detect_suspicious_activity(
    token: str,
    name: str,
    date_str: str,
    submitter_email: str | None = None,
) -> SuspiciousActivityResult:
    """Look for repeated identical submissions or an email flooding links."""
    db = await get_db()
    since = clock.ago_db(hours=1)

    month_day = _month_day(date_str)
    if month_day is not None and name:
        month, day = month_day
        cursor = await db.execute(
            """SELECT COUNT(*)
               FROM birthday_submissions s
               JOIN sharing_links l ON l.id = s.sharing_link_id
               WHERE l.token = ?
                 AND lower(trim(s.name)) = lower(trim(?))
                 AND s.month = ? AND s.day = ?
                 AND s.created_at >= ?""",
            (token, name, month, day, since),
        )
        (duplicate_count,) = await cursor.fetchone()
        if duplicate_count > 0:
            return SuspiciousActivityResult(
                suspicious=True, reason="Duplicate submission detected"
            )

    if submitter_email:
        cursor = await db.execute(
            """SELECT COUNT(*) FROM birthday_submissions
               WHERE submitter_email = ? AND created_at >= ?""",
            (submitter_email.strip().lower(), since),
        )
        (email_count,) = await cursor.fetchone()
        if email_count > SAME_EMAIL_HOURLY_LIMIT:
            return SuspiciousActivityResult(
                suspicious=True,
                reason="Too many submissions from same email address",
            )

    return SuspiciousActivityResult(suspicious=False)
