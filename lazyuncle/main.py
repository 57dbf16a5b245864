"""Lazy Uncle FastAPI application."""

import logging
import secrets
from contextlib import asynccontextmanager

from fastapi import FastAPI

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
for _noisy in ("httpx", "httpcore", "aiosmtplib"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

from fastapi.middleware.cors import CORSMiddleware

from lazyuncle.config import settings
from lazyuncle.database import close_db, init_db
from lazyuncle.routers import admin, auth, birthdays, notifications, sharing, submissions
from lazyuncle.services.background_jobs import scheduler

logger = logging.getLogger(__name__)

VERSION = "0.1.0"
DEFAULT_SECRET_SENTINEL = "change-me-to-a-random-string"


def _ensure_secret_key() -> None:
    """Replace the placeholder secret with one persisted under ``data_dir``.

    The secret signs both session tokens and unsubscribe links, so it must
    survive restarts.
    """
    if settings.secret_key != DEFAULT_SECRET_SENTINEL:
        return

    key_file = settings.data_dir / ".secret_key"
    stored = key_file.read_text().strip() if key_file.exists() else ""
    if stored:
        settings.secret_key = stored
        logger.info("Using stored secret key from %s", key_file)
        return

    settings.secret_key = secrets.token_hex(32)
    key_file.write_text(settings.secret_key)
    logger.warning(
        "No LAZYUNCLE_SECRET_KEY set; generated one and saved it to %s. "
        "Changing it logs everyone out and breaks unsubscribe links already sent.",
        key_file,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    _ensure_secret_key()
    await init_db()

    if settings.enable_background_jobs:
        scheduler.start()
    else:
        logger.info("Background jobs disabled (LAZYUNCLE_ENABLE_BACKGROUND_JOBS=false)")

    try:
        yield
    finally:
        await scheduler.stop()
        await close_db()


app = FastAPI(
    title="Lazy Uncle",
    description="Birthday tracking with shareable submission links",
    version=VERSION,
    lifespan=lifespan,
)

# Dev frontend plus LAZYUNCLE_CORS_ORIGINS (comma-separated)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"]
    + [o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for _router in (auth, birthdays, sharing, submissions, notifications, admin):
    app.include_router(_router.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": VERSION}
