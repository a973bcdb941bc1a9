"""
/api/v1/jobs endpoints.
Queue statistics and background job status.
"""

from fastapi import APIRouter, Depends, HTTPException
from redis.exceptions import RedisError

from landman.dependencies import get_job_queue, verify_api_key
from landman.schemas.jobs import JobStatus, QueueStats
from landman.worker.jobs import JobQueue

router = APIRouter(prefix="/api/v1/jobs", tags=["jobs"], dependencies=[Depends(verify_api_key)])


@router.get("/queue/stats", response_model=QueueStats)
async def queue_stats(jobs: JobQueue = Depends(get_job_queue)):
    """Get current queue statistics."""
    try:
        return QueueStats(**jobs.stats())
    except RedisError as e:
        raise HTTPException(status_code=503, detail=f"Queue unavailable: {str(e)}")


@router.get("/{job_id}", response_model=JobStatus)
async def get_job_status(job_id: str, jobs: JobQueue = Depends(get_job_queue)):
    """Status of an assessment or download job, by the id returned when it was queued."""
    try:
        return JobStatus(**jobs.job_status(job_id))
    except RedisError as e:
        raise HTTPException(status_code=503, detail=f"Queue unavailable: {str(e)}")
