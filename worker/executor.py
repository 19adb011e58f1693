"""
Job executor — runs a single claimed job.

This is the code that actually DOES THE WORK. The worker loop calls
executor.execute(job), and this method handles the full lifecycle:

    1. Find the right handler for job.kind (scheduled, on_demand)
    2. Call handler.run(job)
    3. On success: ack the job so the queue forgets it
    4. On failure: delegate to RetryHandler (which decides retry vs dead-letter)

A job whose kind this worker does not recognise (written by a newer API, or
corrupted) is acked with a warning. Failing it would only retry something
that can never run.

Handlers do their own persistence: a scheduled job writes one report row,
an on-demand job writes one cache entry. The executor never writes either.
"""

import logging
import time
from typing import Callable

from jobqueue.job import Job
from jobqueue.redis_queue import JobQueue
from jobs.base import AbstractJobHandler
from models.enums import JobKind
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)

CompletedListener = Callable[[Job, dict], None]


class JobExecutor:

    def __init__(
        self,
        queue: JobQueue,
        handlers: dict[JobKind, AbstractJobHandler],
        retry_handler: RetryHandler,
    ):
        self._queue = queue
        self._handlers = handlers
        self._retry_handler = retry_handler
        self._completed_listeners: list[CompletedListener] = []

    def on_completed(self, listener: CompletedListener) -> None:
        self._completed_listeners.append(listener)

    def execute(self, job: Job) -> dict:
        """
        Execute a single job. Called by the Worker thread.

        Returns:
            dict with execution status (for logging/debugging, not stored)
        """
        handler = self._handlers.get(job.kind)
        if handler is None:
            tag = getattr(job.payload, "kind_tag", None)
            logger.warning(f"Job {job.id} has unknown kind '{tag}', acknowledging without running")
            self._queue.ack(job)
            return {"status": "skipped", "job_id": job.id}

        start_time = time.monotonic()
        try:
            result = handler.run(job)
        except Exception as e:
            elapsed = time.monotonic() - start_time
            logger.error(f"Job {job.id} [{job.kind.value}] failed after {elapsed:.1f}s: {e}")
            disposition = self._retry_handler.handle_failure(job, e)
            return {
                "status": "failed",
                "job_id": job.id,
                "error": str(e),
                "disposition": disposition.value,
            }

        elapsed = time.monotonic() - start_time
        self._queue.ack(job)
        logger.info(f"Job {job.id} [{job.kind.value}] completed in {elapsed:.1f}s")

        for listener in self._completed_listeners:
            try:
                listener(job, result)
            except Exception:
                logger.error(f"Completion listener raised for job {job.id}", exc_info=True)
        return {"status": "completed", "job_id": job.id, **result}
