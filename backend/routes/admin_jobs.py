"""
Admin Jobs Routes - scheduled job status and manual runs.
"""
from fastapi import APIRouter, HTTPException, Depends, status
from middleware import admin_route_guard
from models import AuditAction, UserRole
from utils.audit import create_audit_log
from job_runner import JOB_RUNNERS
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/jobs", tags=["admin-jobs"])


@router.get("/status")
async def get_jobs_status(current_user: dict = Depends(admin_route_guard)):
    """Scheduled jobs with their next run time."""
    from server import scheduler
    return {
        "scheduled_jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in scheduler.get_jobs()
        ],
        "available_jobs": sorted(JOB_RUNNERS.keys()),
    }


@router.post("/{job_id}/run")
async def run_job_now(
    job_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    """Run one background job immediately. Returns the job's message for the admin toast."""
    if job_id not in JOB_RUNNERS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown job. Use one of: {', '.join(sorted(JOB_RUNNERS.keys()))}",
        )
    try:
        result = await JOB_RUNNERS[job_id]()
    except Exception as e:
        logger.error(f"Manual job run error ({job_id}): {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to run job: {job_id}",
        )

    await create_audit_log(
        action=AuditAction.JOB_RUN,
        actor_role=UserRole.ADMIN,
        actor_id=current_user["user_id"],
        metadata={"job_id": job_id, "count": result.get("count")},
    )
    return {"success": True, "job": job_id, **result}
