"""Notification preference routes + public one-click unsubscribe page."""

import html
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse

from lazyuncle.auth import require_user
from lazyuncle.config import settings
from lazyuncle.models.birthday import NotificationPreferences, NotificationPreferencesUpdate
from lazyuncle.services import notification_service
from lazyuncle.services.unsubscribe import (
    LABEL,
    PREFERENCE_FIELD,
    UNSUBSCRIBE_TYPES,
    verify_unsubscribe_token,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


# ── Authenticated preferences ────────────────────────────────────────────────


@router.get("/api/notification-preferences", response_model=NotificationPreferences)
async def get_preferences(user: dict = Depends(require_user)):
    return await notification_service.get_user_notification_preferences(user["id"])


@router.put("/api/notification-preferences", response_model=NotificationPreferences)
async def update_preferences(
    data: NotificationPreferencesUpdate,
    user: dict = Depends(require_user),
):
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No preference fields given")
    return await notification_service.update_notification_preferences(user["id"], **changes)


# ── Public unsubscribe page (no auth required) ───────────────────────────────


@router.get("/api/unsubscribe", response_class=HTMLResponse)
async def unsubscribe(userId: str = "", type: str = "", token: str = ""):
    """Switch off one kind of email from a signed link in that email."""
    if not userId or not type or not token or type not in UNSUBSCRIBE_TYPES:
        return _render_page(
            "Invalid link",
            "Invalid unsubscribe link",
            "This link is missing required information. "
            "Please use the link directly from your email.",
            status_code=400,
        )

    if not verify_unsubscribe_token(userId, type, token):
        return _render_page(
            "Invalid link",
            "Invalid unsubscribe link",
            "This link is not valid or has been tampered with.",
            status_code=400,
        )

    settings_url = f"{settings.base_url}/settings"
    try:
        await notification_service.disable_preference_if_present(
            int(userId), PREFERENCE_FIELD[type]
        )
    except Exception:
        logger.exception("Unsubscribe failed for user %s", userId)
        return _render_page(
            "Something went wrong",
            "Something went wrong",
            "We couldn't process your unsubscribe request. Please try again or "
            "adjust your preferences in Settings.",
            link=settings_url,
            status_code=500,
        )

    return _render_page(
        "Unsubscribed",
        "You've been unsubscribed",
        f"You will no longer receive {LABEL[type]} from Lazy Uncle. "
        "You can re-enable this at any time in your notification settings.",
        link=settings_url,
    )


def _render_page(
    title: str,
    heading: str,
    message: str,
    link: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    """Render a minimal, self-contained HTML page."""
    link_html = (
        f'<p><a href="{_esc(link)}">Notification settings</a></p>' if link else ""
    )
    content = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{_esc(title)} - Lazy Uncle</title>
    <style>
        body {{ font-family: system-ui, sans-serif; max-width: 480px; margin: 80px auto; padding: 0 24px; color: #111; }}
        h1 {{ font-size: 1.5rem; margin-bottom: 0.5rem; }}
        p {{ color: #555; line-height: 1.6; }}
        a {{ color: #0891b2; }}
    </style>
</head>
<body>
    <h1>{_esc(heading)}</h1>
    <p>{_esc(message)}</p>
    {link_html}
</body>
</html>"""
    return HTMLResponse(content=content, status_code=status_code)


def _esc(s: str) -> str:
    """HTML-escape a string."""
    return html.escape(str(s)) if s else ""
