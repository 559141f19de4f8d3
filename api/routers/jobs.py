"""Job queue inspection endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_queue
from jobs.queue import JobQueue, QueueError

router = APIRouter(prefix="/jobs")


@router.get("")
async def queue_overview(
    limit: int = Query(default=5, ge=1, le=50),
    queue: JobQueue = Depends(get_queue),
):
    """Job counts per state and the most recent dead letters."""
    try:
        counts = await run_in_threadpool(queue.counts)
        dead = await run_in_threadpool(queue.dead_letters, limit)
    except QueueError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return {
        "queue": queue.name,
        "counts": counts,
        "deadLetters": [job.model_dump(mode="json", exclude={"lease"}) for job in dead],
    }


@router.get("/{job_id}")
async def get_job(job_id: str, queue: JobQueue = Depends(get_queue)):
    try:
        job = await run_in_threadpool(queue.get, job_id)
    except QueueError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return job.model_dump(mode="json", exclude={"lease"})
