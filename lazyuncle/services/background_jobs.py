"""Periodic maintenance jobs.

Each job runs in its own asyncio task on its own interval inside the web
process. A job's failure is recorded in its metrics and logged; it never
stops that job's next tick or any other job.
"""

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass

from lazyuncle import clock
from lazyuncle.database import get_db
from lazyuncle.services import notification_service, sharing_service, submission_service

logger = logging.getLogger(__name__)

MINUTE = 60
HOUR = 60 * MINUTE

REJECTED_RETENTION_DAYS = 30
IMPORTED_RETENTION_DAYS = 365

# Manual job type -> metrics key
MAINTENANCE_JOBS = {
    "expired-links": "expired-links-cleanup",
    "old-submissions": "old-submissions-cleanup",
    "orphaned-data": "orphaned-data-cleanup",
    "database-maintenance": "database-maintenance",
}


@dataclass
class JobMetrics:
    job_name: str
    last_run: str
    duration_ms: int
    status: str
    items_processed: int | None = None
    error: str | None = None


# ── Job bodies ───────────────────────────────────────────────────────────────


async def cleanup_orphaned_data() -> int:
    """Remove submissions without a link, preferences without a user and
    imported submissions older than a year. Returns rows deleted."""
    try:
        db = await get_db()
        total = 0

        cursor = await db.execute(
            """DELETE FROM birthday_submissions
               WHERE sharing_link_id NOT IN (SELECT id FROM sharing_links)"""
        )
        total += cursor.rowcount

        cursor = await db.execute(
            """DELETE FROM notification_preferences
               WHERE user_id NOT IN (SELECT id FROM users)"""
        )
        total += cursor.rowcount

        cursor = await db.execute(
            "DELETE FROM birthday_submissions WHERE status = 'IMPORTED' AND created_at < ?",
            (clock.ago_db(days=IMPORTED_RETENTION_DAYS),),
        )
        total += cursor.rowcount

        await db.commit()
        return total
    except Exception:
        logger.exception("Error cleaning up orphaned data")
        return 0


async def get_database_statistics() -> dict:
    db = await get_db()
    now = clock.now_db()
    queries = {
        "total_users": ("SELECT COUNT(*) FROM users", ()),
        "total_birthdays": ("SELECT COUNT(*) FROM birthdays", ()),
        "total_sharing_links": ("SELECT COUNT(*) FROM sharing_links", ()),
        "active_sharing_links": (
            "SELECT COUNT(*) FROM sharing_links WHERE is_active = 1 AND expires_at > ?",
            (now,),
        ),
        "total_submissions": ("SELECT COUNT(*) FROM birthday_submissions", ()),
        "pending_submissions": (
            "SELECT COUNT(*) FROM birthday_submissions WHERE status = 'PENDING'",
            (),
        ),
    }
    stats = {}
    for key, (sql, params) in queries.items():
        cursor = await db.execute(sql, params)
        (stats[key],) = await cursor.fetchone()
    return stats


async def perform_database_maintenance() -> None:
    db = await get_db()
    await db.execute("ANALYZE")
    await db.commit()
    stats = await get_database_statistics()
    logger.info("Database statistics: %s", json.dumps(stats))


# ── Scheduler ────────────────────────────────────────────────────────────────


class BackgroundJobScheduler:
    def __init__(self):
        self._tasks: list[asyncio.Task] = []
        self._running = False
        self._metrics: dict[str, JobMetrics] = {}

    @property
    def running(self) -> bool:
        return self._running

    def _jobs(self) -> list[tuple[str, float, object]]:
        """(name, interval seconds, coroutine function) for every periodic job."""
        return [
            ("notification-processing", 30, self._process_notifications),
            ("expired-links-cleanup", HOUR, self._cleanup_expired_links),
            ("old-submissions-cleanup", 6 * HOUR, self._cleanup_old_submissions),
            ("orphaned-data-cleanup", 12 * HOUR, self._cleanup_orphaned),
            ("database-maintenance", 24 * HOUR, self._database_maintenance),
            ("daily-summary-notifications", 24 * HOUR, self._daily_summaries),
            ("metrics-logging", HOUR, self._log_metrics),
        ]

    def start(self) -> None:
        """Start every periodic job. Calling it again while running is a no-op."""
        if self._running:
            logger.info("Background jobs already running")
            return

        self._running = True
        for name, interval, job in self._jobs():
            self._tasks.append(asyncio.create_task(self._every(interval, job), name=name))
        logger.info("Started %d background jobs", len(self._tasks))

    async def stop(self) -> None:
        """Cancel every job and reset the scheduler state, metrics included."""
        if not self._running:
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._metrics.clear()
        self._running = False
        logger.info("Background jobs stopped")

    async def _every(self, interval: float, job) -> None:
        while True:
            await asyncio.sleep(interval)
            await job()

    async def run_job_with_metrics(self, job_name: str, job) -> JobMetrics:
        """Run ``job`` (returning an item count) and record how it went."""
        started = time.monotonic()
        last_run = clock.now_db()
        try:
            items = await job()
            metrics = JobMetrics(
                job_name=job_name,
                last_run=last_run,
                duration_ms=int((time.monotonic() - started) * 1000),
                status="success",
                items_processed=items,
            )
        except Exception as e:
            logger.exception("Error in background job %s", job_name)
            metrics = JobMetrics(
                job_name=job_name,
                last_run=last_run,
                duration_ms=int((time.monotonic() - started) * 1000),
                status="error",
                error=str(e),
            )
        self._metrics[job_name] = metrics
        return metrics

    # ── Job wrappers ──────────────────────────────────────────────────────

    async def _process_notifications(self) -> None:
        await self.run_job_with_metrics(
            "notification-processing", notification_service.process_pending_notifications
        )

    async def _cleanup_expired_links(self) -> None:
        metrics = await self.run_job_with_metrics(
            "expired-links-cleanup", sharing_service.cleanup_expired_links
        )
        if metrics.items_processed:
            logger.info("Cleaned up %d expired sharing links", metrics.items_processed)

    async def _cleanup_old_submissions(self) -> None:
        async def job():
            return await submission_service.cleanup_old_rejected_submissions(
                REJECTED_RETENTION_DAYS
            )

        metrics = await self.run_job_with_metrics("old-submissions-cleanup", job)
        if metrics.items_processed:
            logger.info("Cleaned up %d old rejected submissions", metrics.items_processed)

    async def _cleanup_orphaned(self) -> None:
        metrics = await self.run_job_with_metrics("orphaned-data-cleanup", cleanup_orphaned_data)
        if metrics.items_processed:
            logger.info("Cleaned up %d orphaned data records", metrics.items_processed)

    async def _database_maintenance(self) -> None:
        async def job():
            await perform_database_maintenance()
            return 1

        await self.run_job_with_metrics("database-maintenance", job)

    async def _daily_summaries(self) -> None:
        await self.run_job_with_metrics(
            "daily-summary-notifications", notification_service.send_daily_summaries
        )

    async def _log_metrics(self) -> None:
        if not self._metrics:
            return
        for metrics in self._metrics.values():
            items = (
                f" ({metrics.items_processed} items)"
                if metrics.items_processed is not None
                else ""
            )
            logger.info(
                "job %s: %s in %dms%s at %s%s",
                metrics.job_name,
                metrics.status,
                metrics.duration_ms,
                items,
                metrics.last_run,
                f" error={metrics.error}" if metrics.error else "",
            )

    # ── Introspection and manual runs ─────────────────────────────────────

    def get_status(self) -> dict:
        return {
            "running": self._running,
            "job_count": len(self._tasks),
            "metrics": [asdict(m) for m in self._metrics.values()],
        }

    def get_maintenance_stats(self) -> dict:
        def items(name: str) -> int:
            metrics = self._metrics.get(name)
            return (metrics.items_processed or 0) if metrics else 0

        maintenance = self._metrics.get("database-maintenance")
        return {
            "expired_links_cleaned_up": items("expired-links-cleanup"),
            "old_submissions_cleaned_up": items("old-submissions-cleanup"),
            "orphaned_data_cleaned_up": items("orphaned-data-cleanup"),
            "database_optimization_run": bool(maintenance and maintenance.status == "success"),
        }

    async def run_maintenance_job(self, job_type: str) -> JobMetrics:
        """Run one maintenance job now. Raises ValueError for unknown types."""
        if job_type not in MAINTENANCE_JOBS:
            raise ValueError(f"Unknown job type: {job_type}")

        runners = {
            "expired-links": self._cleanup_expired_links,
            "old-submissions": self._cleanup_old_submissions,
            "orphaned-data": self._cleanup_orphaned,
            "database-maintenance": self._database_maintenance,
        }
        await runners[job_type]()
        return self._metrics[MAINTENANCE_JOBS[job_type]]


# Process-wide scheduler used by the application lifespan
scheduler = BackgroundJobScheduler()
