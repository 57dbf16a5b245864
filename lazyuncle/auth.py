"""Authentication: email/password accounts with JWT bearer tokens."""

from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import HTTPException, Request
from jose import JWTError, jwt

from lazyuncle import clock
from lazyuncle.config import settings
from lazyuncle.database import get_db

ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


def create_access_token(user_id: int, expires_days: int | None = None) -> str:
    """Create a JWT access token for ``user_id``."""
    if expires_days is None:
        expires_days = settings.token_expiry_days
    expire = datetime.now(timezone.utc) + timedelta(days=expires_days)
    payload = {
        "sub": str(user_id),
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises JWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])


# ── Accounts ─────────────────────────────────────────────────────────────────


async def get_user(user_id: int) -> dict | None:
    db = await get_db()
    cursor = await db.execute(
        "SELECT id, email, name, created_at FROM users WHERE id = ?", (user_id,)
    )
    columns = [desc[0] for desc in cursor.description]
    row = await cursor.fetchone()
    return dict(zip(columns, row)) if row else None


async def get_user_by_email(email: str) -> dict | None:
    """Includes ``password_hash``; never return this row to a client."""
    db = await get_db()
    cursor = await db.execute(
        "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
    )
    columns = [desc[0] for desc in cursor.description]
    row = await cursor.fetchone()
    return dict(zip(columns, row)) if row else None


async def create_user(email: str, password: str, name: str | None = None) -> dict:
    """Create an account. Raises ValueError if the email is taken."""
    if await get_user_by_email(email):
        raise ValueError("An account with this email already exists")
    db = await get_db()
    cursor = await db.execute(
        "INSERT INTO users (email, name, password_hash, created_at) VALUES (?, ?, ?, ?)",
        (email.strip().lower(), name, hash_password(password), clock.now_db()),
    )
    await db.commit()
    return await get_user(cursor.lastrowid)


async def authenticate(email: str, password: str) -> dict | None:
    user = await get_user_by_email(email)
    if user is None or not verify_password(password, user["password_hash"]):
        return None
    return await get_user(user["id"])


async def require_user(request: Request) -> dict:
    """FastAPI dependency resolving the bearer token to the current user."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing authentication token")

    token = auth_header.split(" ", 1)[1]
    try:
        payload = decode_token(token)
        user_id = int(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user
