"""
Schedule and queue inspection endpoints.

GET /schedules              → The caller's cron registrations with their next run
GET /scheduler/status       → Job counts per queue state
GET /scheduler/dead-letter  → Jobs that failed permanently

Read-only: schedules change only through the website endpoints, so the
website row and its registration cannot drift apart through this router.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from api.auth import get_current_user
from api.dependencies import get_queue
from api.schemas.scheduler import QueueStatus, ScheduleResponse
from jobqueue.redis_queue import JobQueue

router = APIRouter(tags=["scheduler"])


@router.get("/schedules", response_model=list[ScheduleResponse])
async def list_schedules(
    user_id: str = Depends(get_current_user),
    queue: JobQueue = Depends(get_queue),
) -> list[ScheduleResponse]:
    registrations = await run_in_threadpool(queue.list_repeating)
    return [
        ScheduleResponse(
            id=r.id,
            website_id=getattr(r.payload, "website_id", None),
            url=getattr(r.payload, "url", None),
            cron=r.pattern,
            next_run=datetime.fromtimestamp(r.next_run, tz=timezone.utc),
        )
        for r in registrations
        if getattr(r.payload, "user_id", None) == user_id
    ]


@router.get("/scheduler/status", response_model=QueueStatus)
async def get_queue_status(
    user_id: str = Depends(get_current_user),
    queue: JobQueue = Depends(get_queue),
) -> QueueStatus:
    counts = await run_in_threadpool(queue.counts)
    return QueueStatus(**counts)


@router.get("/scheduler/dead-letter")
async def get_dead_letter_jobs(
    user_id: str = Depends(get_current_user),
    queue: JobQueue = Depends(get_queue),
) -> list[dict]:
    """
    Jobs that exhausted their attempts or failed with a permanent error.
    Scheduled entries are limited to the caller's websites; on-demand
    entries carry no owner and are always listed.
    """
    entries = await run_in_threadpool(queue.dead_letters)
    return [
        e for e in entries
        if e.get("payload", {}).get("user_id") in (None, user_id)
    ]
