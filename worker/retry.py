"""
Retry handler — decides what happens when a job fails.

The queue already knows how to retry: fail() either parks the job in the
delayed set with exponential backoff or, once attempts are exhausted, moves
it to the dead-letter list. This handler sits between the executor and the
queue and adds the two things only the worker knows about:

1. Whether the error is worth retrying at all.
   InvalidTargetError (bad or disallowed URL) will fail the same way every
   time, so it goes straight to the dead-letter list.

2. What the job's owner needs to hear about a terminal failure.
   The queue emits a failure event before removing the job; this handler
   routes it to the job's handler. For on-demand jobs that writes the error
   into the result cache so the polling client gets an answer.

Lifecycle on failure:
    active → (exception) → attempts_made++ → delayed   (if attempts left)
    active → (exception) → attempts_made++ → failed    (exhausted → DLQ + event)

The event also fires for jobs whose worker died (stalled lock), because the
scheduler engine reports those through the same fail() path.
"""

import logging

from jobqueue.job import Job
from jobqueue.redis_queue import JobQueue
from jobs.base import AbstractJobHandler
from models.enums import FailureDisposition, JobKind

logger = logging.getLogger(__name__)


class RetryHandler:

    def __init__(self, queue: JobQueue, handlers: dict[JobKind, AbstractJobHandler]):
        self._queue = queue
        self._handlers = handlers
        queue.on_failed(self._on_terminal_failure)

    def handle_failure(self, job: Job, error: Exception) -> FailureDisposition:
        """
        Called by JobExecutor when a handler raises.

        Args:
            job: the claimed job
            error: the exception raised by the handler; its message is what
                   the dead-letter entry and the polling client will see
        """
        retryable = getattr(error, "retryable", True)
        if not retryable:
            logger.info(f"Job {job.id} failed with a non-retryable error, not retrying")
        return self._queue.fail(job, str(error), retryable=retryable)

    def _on_terminal_failure(self, job: Job, error: str) -> None:
        handler = self._handlers.get(job.kind)
        if handler is None:
            return
        try:
            handler.on_terminal_failure(job, error)
        except Exception:
            logger.critical(
                f"Could not record terminal failure for job {job.id}; "
                "its owner will not be told it failed",
                exc_info=True,
            )
