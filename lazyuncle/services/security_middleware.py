"""Security gates for link creation and public submissions.

Both gates layer the in-memory rate limiter, the persistent limits, the
sharing-link quotas and a few suspicious-activity heuristics. They fail
secure: any unexpected error denies the request.
"""

import json
import logging
import re
from collections import Counter
from dataclasses import asdict, dataclass, field

from fastapi import Request

from lazyuncle import clock
from lazyuncle.services import rate_limiter, sharing_service

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("lazyuncle.security")

LOW = "low"
MEDIUM = "medium"
HIGH = "high"
_SEVERITY_RANK = {LOW: 0, MEDIUM: 1, HIGH: 2}

BOT_USER_AGENTS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"bot",
        r"crawler",
        r"spider",
        r"scraper",
        r"scrapy",
        r"curl",
        r"wget",
        r"python",
        r"requests",
        r"externalhit",
        r"twitter",
        r"go-http-client",
        r"http-client",
    )
]

SUSPICIOUS_CONTENT = [
    re.compile(r"script", re.IGNORECASE),
    re.compile(r"<[^>]*>"),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"onload", re.IGNORECASE),
    re.compile(r"onerror", re.IGNORECASE),
    re.compile(r"eval\(", re.IGNORECASE),
    re.compile(r"document\.", re.IGNORECASE),
    re.compile(r"window\.", re.IGNORECASE),
]

RAPID_LINK_THRESHOLD = 3
RAPID_LINK_WINDOW_MINUTES = 5

MSG_LINK_RATE_LIMITED = "Rate limit exceeded. Please try again later."
MSG_LINK_SUSPICIOUS = "Suspicious activity detected. Please contact support if this is an error."
MSG_IP_RATE_LIMITED = "Too many submissions from your location. Please try again later."
MSG_LINK_FLOODED = "This sharing link has received too many submissions. Please try again later."
MSG_LINK_DEACTIVATED = (
    "Suspicious activity detected. The sharing link has been deactivated for security."
)
MSG_CHECK_FAILED = "Security check failed. Please try again."


@dataclass
class SecurityContext:
    ip_address: str
    user_agent: str | None = None
    user_id: int | None = None
    token: str | None = None


@dataclass
class SuspiciousActivity:
    detected: bool = False
    severity: str = LOW
    reasons: list[str] = field(default_factory=list)

    @property
    def reason(self) -> str | None:
        return ", ".join(self.reasons) if self.reasons else None

    def flag(self, reason: str, severity: str) -> None:
        self.detected = True
        self.reasons.append(reason)
        if _SEVERITY_RANK[severity] > _SEVERITY_RANK[self.severity]:
            self.severity = severity


@dataclass
class SecurityResult:
    allowed: bool
    reason: str | None = None
    remaining: int | None = None
    reset_time: str | None = None
    retry_after: int | None = None
    suspicious_activity: SuspiciousActivity | None = None


# ── Monitoring counters (process-local) ──────────────────────────────────────

_stats = {"total_requests": 0, "blocked_requests": 0, "suspicious_activity": 0}
_blocked_ips: Counter = Counter()
_blocked_reasons: Counter = Counter()


def get_security_stats(top: int = 10) -> dict:
    return {
        **_stats,
        "top_blocked_ips": [
            {"ip": ip, "count": count} for ip, count in _blocked_ips.most_common(top)
        ],
        "top_blocked_reasons": [
            {"reason": reason, "count": count}
            for reason, count in _blocked_reasons.most_common(top)
        ],
    }


def reset_security_stats() -> None:
    for key in _stats:
        _stats[key] = 0
    _blocked_ips.clear()
    _blocked_reasons.clear()


def log_security_event(
    ctx: SecurityContext,
    action: str,
    result: str,
    reason: str | None = None,
    **metadata,
) -> None:
    """Emit one structured SECURITY_EVENT line and update the counters."""
    try:
        _stats["total_requests"] += 1
        if result == "blocked":
            _stats["blocked_requests"] += 1
            _blocked_ips[ctx.ip_address] += 1
            _blocked_reasons[reason or "unknown"] += 1
        if reason and "suspicious" in reason.lower():
            _stats["suspicious_activity"] += 1

        entry = {
            "timestamp": clock.utcnow().isoformat() + "Z",
            "ip_address": ctx.ip_address,
            "user_agent": ctx.user_agent,
            "user_id": ctx.user_id,
            "action": action,
            "result": result,
            "reason": reason,
            "metadata": metadata,
        }
        security_logger.info("SECURITY_EVENT %s", json.dumps(entry, default=str))

        if result == "blocked" and reason and "suspicious" in reason.lower():
            security_logger.warning(
                "HIGH_SEVERITY_SECURITY_EVENT ip=%s action=%s reason=%s",
                ctx.ip_address,
                action,
                reason,
            )
    except Exception:
        logger.exception("Failed to log security event")


def extract_security_context(request: Request) -> SecurityContext:
    """Client IP from proxy headers (first X-Forwarded-For hop, then X-Real-IP)."""
    forwarded = request.headers.get("x-forwarded-for")
    real_ip = request.headers.get("x-real-ip")
    if forwarded and forwarded.split(",")[0].strip():
        ip_address = forwarded.split(",")[0].strip()
    elif real_ip and real_ip.strip():
        ip_address = real_ip.strip()
    elif request.client and request.client.host:
        ip_address = request.client.host
    else:
        ip_address = "unknown"
    return SecurityContext(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent") or None,
    )


# ── Heuristics ───────────────────────────────────────────────────────────────


def is_bot_user_agent(user_agent: str | None) -> bool:
    if not user_agent:
        return False
    return any(pattern.search(user_agent) for pattern in BOT_USER_AGENTS)


def contains_suspicious_content(content: str | None) -> bool:
    if not content:
        return False
    return any(pattern.search(content) for pattern in SUSPICIOUS_CONTENT)


async def detect_suspicious_link_generation(ctx: SecurityContext) -> SuspiciousActivity:
    activity = SuspiciousActivity()
    if is_bot_user_agent(ctx.user_agent):
        activity.flag("Bot-like user agent detected", MEDIUM)

    recent = await sharing_service.count_recent_links(ctx.user_id, RAPID_LINK_WINDOW_MINUTES)
    if recent >= RAPID_LINK_THRESHOLD:
        activity.flag("Rapid link generation from user", HIGH)
    return activity


async def detect_suspicious_submission(
    ctx: SecurityContext,
    name: str,
    date_str: str,
    submitter_email: str | None,
) -> SuspiciousActivity:
    activity = SuspiciousActivity()
    if is_bot_user_agent(ctx.user_agent):
        activity.flag("Bot-like user agent", MEDIUM)

    if contains_suspicious_content(name):
        activity.flag("Suspicious content in name field", MEDIUM)

    pattern = await rate_limiter.detect_suspicious_activity(
        ctx.token, name, date_str, submitter_email
    )
    if pattern.suspicious:
        activity.flag(pattern.reason or "Suspicious submission pattern", HIGH)
    return activity


# ── Gates ────────────────────────────────────────────────────────────────────


async def check_sharing_link_rate_limit(ctx: SecurityContext) -> SecurityResult:
    """Gate sharing link creation for ``ctx.user_id``."""
    action = "create_sharing_link"
    try:
        ip_result = rate_limiter.check_submission_rate_limit(ctx.ip_address)
        if not ip_result.allowed:
            log_security_event(ctx, action, "blocked", "IP rate limit exceeded")
            return SecurityResult(
                allowed=False,
                reason=MSG_LINK_RATE_LIMITED,
                remaining=ip_result.remaining,
                reset_time=clock.to_db(ip_result.reset_time),
                retry_after=ip_result.retry_after,
            )

        quota = await sharing_service.can_create_sharing_link(ctx.user_id)
        if not quota.can_create:
            log_security_event(
                ctx, action, "blocked", quota.reason,
                active_links=quota.active_links_count,
                daily_links=quota.daily_links_count,
            )
            return SecurityResult(allowed=False, reason=quota.reason)

        activity = await detect_suspicious_link_generation(ctx)
        if activity.detected and activity.severity == HIGH:
            log_security_event(
                ctx, action, "blocked", "Suspicious activity detected",
                suspicious=asdict(activity),
            )
            return SecurityResult(
                allowed=False, reason=MSG_LINK_SUSPICIOUS, suspicious_activity=activity
            )

        log_security_event(
            ctx, action, "allowed",
            "Suspicious activity detected" if activity.detected else None,
            remaining=ip_result.remaining,
            suspicious=asdict(activity),
        )
        return SecurityResult(
            allowed=True,
            remaining=ip_result.remaining,
            reset_time=clock.to_db(ip_result.reset_time),
            suspicious_activity=activity,
        )
    except Exception as e:
        logger.exception("Security check for link creation failed")
        log_security_event(ctx, action, "blocked", "Security check failed", error=str(e))
        return SecurityResult(allowed=False, reason=MSG_CHECK_FAILED)


async def check_submission_security(
    ctx: SecurityContext,
    name: str,
    date_str: str,
    submitter_email: str | None = None,
) -> SecurityResult:
    """Gate a public submission to the link ``ctx.token``.

    High-severity activity deactivates the link before denying.
    """
    action = "submit_birthday"
    try:
        ip_result = rate_limiter.check_submission_rate_limit(ctx.ip_address)
        if not ip_result.allowed:
            log_security_event(ctx, action, "blocked", "IP rate limit exceeded")
            return SecurityResult(
                allowed=False,
                reason=MSG_IP_RATE_LIMITED,
                remaining=0,
                reset_time=clock.to_db(ip_result.reset_time),
                retry_after=ip_result.retry_after,
            )

        link_result = rate_limiter.check_link_submission_rate_limit(ctx.token)
        if not link_result.allowed:
            log_security_event(ctx, action, "blocked", "Link rate limit exceeded")
            return SecurityResult(
                allowed=False,
                reason=MSG_LINK_FLOODED,
                remaining=0,
                reset_time=clock.to_db(link_result.reset_time),
                retry_after=link_result.retry_after,
            )

        persistent = await rate_limiter.check_persistent_rate_limit(ctx.ip_address)
        if not persistent.allowed:
            log_security_event(ctx, action, "blocked", persistent.reason)
            return SecurityResult(allowed=False, reason=persistent.reason)

        activity = await detect_suspicious_submission(ctx, name, date_str, submitter_email)
        if activity.detected:
            blocked = activity.severity == HIGH
            log_security_event(
                ctx, action,
                "blocked" if blocked else "allowed",
                "High-risk suspicious activity" if blocked else "Suspicious activity detected",
                suspicious=asdict(activity),
                submission={"name": name, "date": date_str},
            )
            if blocked:
                await _deactivate_suspicious_link(ctx, activity.reason or "High-risk activity")
                return SecurityResult(
                    allowed=False, reason=MSG_LINK_DEACTIVATED, suspicious_activity=activity
                )
        else:
            log_security_event(ctx, action, "allowed")

        reset_time = max(ip_result.reset_time, link_result.reset_time)
        return SecurityResult(
            allowed=True,
            remaining=min(ip_result.remaining, link_result.remaining),
            reset_time=clock.to_db(reset_time),
            suspicious_activity=activity,
        )
    except Exception as e:
        logger.exception("Security check for submission failed")
        log_security_event(ctx, action, "blocked", "Security check failed", error=str(e))
        return SecurityResult(allowed=False, reason=MSG_CHECK_FAILED)


async def _deactivate_suspicious_link(ctx: SecurityContext, reason: str) -> None:
    changed = await sharing_service.deactivate_sharing_link_by_token(ctx.token)
    log_security_event(
        SecurityContext(ip_address="system"),
        "deactivate_suspicious_link",
        "allowed",
        f"Automatic deactivation: {reason}",
        token=ctx.token,
        changed=changed,
    )
