"""
lazyuncle-maint: run Lazy Uncle maintenance jobs from the command line.

Usage:
    lazyuncle-maint expired-links            # deactivate expired sharing links
    lazyuncle-maint old-submissions          # delete old rejected submissions
    lazyuncle-maint orphaned-data            # delete orphaned rows
    lazyuncle-maint database-maintenance     # ANALYZE + statistics
    lazyuncle-maint stats                    # print database statistics

Uses the same LAZYUNCLE_* environment variables as the web application.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict

from lazyuncle.database import close_db, init_db
from lazyuncle.services.background_jobs import (
    MAINTENANCE_JOBS,
    BackgroundJobScheduler,
    get_database_statistics,
)


async def _run(command: str) -> int:
    await init_db()
    try:
        if command == "stats":
            print(json.dumps(await get_database_statistics(), indent=2))
            return 0

        metrics = await BackgroundJobScheduler().run_maintenance_job(command)
        print(json.dumps(asdict(metrics), indent=2))
        return 0 if metrics.status == "success" else 1
    finally:
        await close_db()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="lazyuncle-maint",
        description="Run Lazy Uncle maintenance jobs against the configured database.",
    )
    parser.add_argument("command", choices=[*MAINTENANCE_JOBS, "stats"])
    parser.add_argument("-v", "--verbose", action="store_true", help="log at INFO level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    return asyncio.run(_run(args.command))


if __name__ == "__main__":
    sys.exit(main())
