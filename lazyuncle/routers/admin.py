"""Operational status routes: background jobs and security counters."""

from fastapi import APIRouter, Depends, HTTPException

from lazyuncle.auth import require_user
from lazyuncle.services import security_middleware
from lazyuncle.services.background_jobs import scheduler

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_user)])


@router.get("/jobs")
async def job_status():
    """Scheduler state, per-job metrics and security counters."""
    return {
        **scheduler.get_status(),
        "maintenance": scheduler.get_maintenance_stats(),
        "security": security_middleware.get_security_stats(),
    }


@router.post("/jobs/{job_type}")
async def run_job(job_type: str):
    """Run one maintenance job immediately."""
    try:
        metrics = await scheduler.run_maintenance_job(job_type)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return metrics
