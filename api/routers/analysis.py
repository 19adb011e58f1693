"""
On-demand analysis endpoints — the asynchronous polling contract.

POST /analyze          → enqueue an audit, answer 202 {jobId} immediately
GET  /result/{job_id}  → 200 {report, insights, saved} when finished
                         202 {status: "pending"} while queued or running
                         200 {error} when the audit failed for good

Clients poll /result until they see a non-202 answer. The result is handed
over exactly once: reading it deletes it from the cache, so a second GET for
the same id goes back to 202. An id nobody ever enqueued also reads as 202;
the API does not track which ids exist.

The queue and cache clients are synchronous, so these are plain `def`
endpoints and FastAPI runs them in its thread pool.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.auth import get_current_user
from api.dependencies import get_queue, get_result_cache
from api.schemas.analysis import AnalyzeAccepted, AnalyzeRequest
from cache.result_cache import ResultCache
from jobqueue.job import on_demand_job
from jobqueue.redis_queue import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analysis"])


@router.post("/analyze", response_model=AnalyzeAccepted, status_code=202)
def request_analysis(
    body: AnalyzeRequest,
    user_id: str = Depends(get_current_user),
    queue: JobQueue = Depends(get_queue),
) -> AnalyzeAccepted:
    """
    Queue an on-demand audit.

    The job id is a fresh UUID, so two requests for the same URL are two
    independent audits. On-demand jobs jump ahead of scheduled ones.
    """
    categories = [c.value for c in body.categories] if body.categories else None
    job = on_demand_job(body.url, categories=categories, form_factor=body.form_factor.value)
    queue.enqueue(job)
    logger.info(f"User {user_id} requested analysis of {body.url} (Job ID: {job.id})")
    return AnalyzeAccepted(jobId=job.id)


@router.get("/result/{job_id}")
def get_analysis_result(
    job_id: str,
    user_id: str = Depends(get_current_user),
    cache: ResultCache = Depends(get_result_cache),
):
    result = cache.consume(job_id)
    if result is None:
        return JSONResponse(
            status_code=202,
            content={"status": "pending", "message": "Analysis is pending"},
        )
    return result
