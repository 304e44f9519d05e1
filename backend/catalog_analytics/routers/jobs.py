"""
Admin endpoints for inspecting and manually triggering background jobs.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
import logging

from catalog_analytics.core.security import require_admin_key
from catalog_analytics.jobs.registry import JobRegistry
from catalog_analytics.schemas.jobs import JobStatusItem, JobStatusResponse, TriggerJobResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["jobs"], dependencies=[Depends(require_admin_key)])


def get_job_registry(request: Request) -> JobRegistry:
    """The registry owned by the running app (set on app.state at startup)."""
    return request.app.state.job_registry


@router.get("/jobs", response_model=JobStatusResponse)
def list_jobs(registry: JobRegistry = Depends(get_job_registry)):
    statuses = registry.get_job_status()
    return JobStatusResponse(
        scheduled=registry.scheduled,
        jobs={name: JobStatusItem(**job_status) for name, job_status in statuses.items()},
    )


@router.post(
    "/jobs/{job_name}/trigger",
    response_model=TriggerJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def trigger_job(
    job_name: str,
    background_tasks: BackgroundTasks,
    registry: JobRegistry = Depends(get_job_registry),
):
    """
    Queue a manual run. The run happens after the response is sent and is
    subject to the same overlap guard as scheduled runs.
    """
    if not registry.is_registered(job_name):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown job: {job_name}",
        )

    already_running = registry.is_running(job_name)
    logger.info("Manual trigger for job %s (already_running=%s)", job_name, already_running)
    background_tasks.add_task(registry.trigger_job, job_name)
    return TriggerJobResponse(job=job_name, accepted=True, already_running=already_running)
