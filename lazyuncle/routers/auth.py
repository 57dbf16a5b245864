"""Authentication routes: register, login, current user."""

import time

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from lazyuncle.auth import authenticate, create_access_token, create_user, require_user
from lazyuncle.config import settings
from lazyuncle.services.input_validator import validate_email

# ── Login rate limiting ──────────────────────────────────────────────────────
# Track failed login attempts per IP: {ip: [timestamp, ...]}
_login_attempts: dict[str, list[float]] = {}
_RATE_LIMIT_WINDOW = 15 * 60  # 15 minutes
_RATE_LIMIT_MAX = 5  # max failures before lockout


def _check_rate_limit(ip: str) -> None:
    """Raise 429 if this IP has too many recent failed login attempts."""
    now = time.monotonic()
    attempts = [t for t in _login_attempts.get(ip, []) if now - t < _RATE_LIMIT_WINDOW]
    _login_attempts[ip] = attempts
    if len(attempts) >= _RATE_LIMIT_MAX:
        raise HTTPException(
            status_code=429,
            detail="Too many failed login attempts. Try again later.",
        )


def _record_failed_attempt(ip: str) -> None:
    _login_attempts.setdefault(ip, []).append(time.monotonic())


def _clear_attempts(ip: str) -> None:
    _login_attempts.pop(ip, None)


router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=8)
    name: str | None = Field(None, max_length=100)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1)


class AuthResponse(BaseModel):
    token: str
    expires_in_days: int


class UserResponse(BaseModel):
    id: int
    email: str
    name: str | None = None
    created_at: str


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(req: RegisterRequest):
    """Create an account and receive a JWT token."""
    email_ok, email = validate_email(req.email)
    if not email_ok or not email:
        raise HTTPException(status_code=400, detail="Invalid email address format")
    try:
        user = await create_user(email, req.password, req.name)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return AuthResponse(
        token=create_access_token(user["id"]),
        expires_in_days=settings.token_expiry_days,
    )


@router.post("/login", response_model=AuthResponse)
async def login(req: LoginRequest, request: Request):
    """Authenticate with email and password."""
    client_ip = request.client.host if request.client else "unknown"
    _check_rate_limit(client_ip)

    user = await authenticate(req.email, req.password)
    if user is None:
        _record_failed_attempt(client_ip)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    _clear_attempts(client_ip)
    return AuthResponse(
        token=create_access_token(user["id"]),
        expires_in_days=settings.token_expiry_days,
    )


@router.get("/me", response_model=UserResponse)
async def me(user: dict = Depends(require_user)):
    return user
