"""Signed one-click unsubscribe links.

The token is the unpadded base64url HMAC-SHA256 of ``"{user_id}:{type}"``
keyed by the application secret, so a link can only switch off the one
preference it was issued for.
"""

import base64
import hashlib
import hmac
from urllib.parse import urlencode

from lazyuncle.config import settings

UNSUBSCRIBE_TYPES = ("submission", "summary", "reminder")

# Preference column switched off by each unsubscribe type
PREFERENCE_FIELD = {
    "submission": "email_notifications",
    "summary": "summary_notifications",
    "reminder": "birthday_reminders",
}

LABEL = {
    "submission": "new submission emails",
    "summary": "daily summary emails",
    "reminder": "birthday reminder emails",
}


def generate_unsubscribe_token(user_id: int | str, unsubscribe_type: str) -> str:
    digest = hmac.new(
        settings.secret_key.encode("utf-8"),
        f"{user_id}:{unsubscribe_type}".encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_unsubscribe_token(user_id: int | str, unsubscribe_type: str, token: str) -> bool:
    expected = generate_unsubscribe_token(user_id, unsubscribe_type)
    return hmac.compare_digest(expected.encode("ascii"), token.encode("utf-8"))


def build_unsubscribe_url(user_id: int | str, unsubscribe_type: str) -> str:
    params = urlencode({
        "userId": str(user_id),
        "type": unsubscribe_type,
        "token": generate_unsubscribe_token(user_id, unsubscribe_type),
    })
    return f"{settings.base_url}/api/unsubscribe?{params}"
