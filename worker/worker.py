"""
Worker — pulls jobs from the queue and executes them one at a time.

Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                        Worker                            │
    │                                                         │
    │  Worker Thread                                          │
    │  ┌───────────────────────┐                              │
    │  │ queue.dequeue()       │  ← polls the waiting set,    │
    │  │ (priority, then FIFO) │    claims one job atomically │
    │  └──────────┬────────────┘                              │
    │             │                                            │
    │             ▼                                            │
    │  ┌───────────────────────┐     ┌──────────────────────┐ │
    │  │ JobExecutor.execute   │────>│ handler.run(job)     │ │
    │  │ ack / RetryHandler    │     │ runner → store/cache │ │
    │  └───────────────────────┘     └──────────────────────┘ │
    └─────────────────────────────────────────────────────────┘

Concurrency is 1 per process. An audit drives a whole headless browser
and is CPU- and memory-heavy; running two in one process makes both slower
and less reliable. Scale out with more worker processes instead: the
queue's atomic claim guarantees each job goes to exactly one of them.

stop() lets the in-flight job finish (drain) before returning. A job that
is interrupted anyway (process killed) is recovered by the scheduler
engine once its claim lock expires.
"""

import logging
import threading
from typing import Callable, Optional

from config.settings import settings
from analysis.runner import AnalysisRunner
from cache.result_cache import ResultCache
from jobqueue.job import Job
from jobqueue.redis_queue import JobQueue
from jobs.registry import build_handlers
from storage.reports import ReportStore
from worker.executor import JobExecutor
from worker.retry import RetryHandler

logger = logging.getLogger(__name__)


class Worker:

    def __init__(
        self,
        queue: JobQueue,
        runner: AnalysisRunner,
        storage: ReportStore,
        cache: ResultCache,
        poll_interval: float = settings.WORKER_POLL_INTERVAL,
    ):
        self._queue = queue
        self._poll_interval = poll_interval
        handlers = build_handlers(runner, storage, cache)
        self._retry_handler = RetryHandler(queue, handlers)
        self._executor = JobExecutor(queue, handlers, self._retry_handler)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Events ──────────────────────────────────────────────────

    def on_completed(self, listener: Callable[[Job, dict], None]) -> None:
        self._executor.on_completed(listener)

    def on_failed(self, listener: Callable[[Job, str], None]) -> None:
        """Terminal failures only; retried attempts are not reported."""
        self._queue.on_failed(listener)

    # ── Lifecycle ───────────────────────────────────────────────

    def start(self) -> None:
        """Start consuming in a daemon thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="audit-worker", daemon=True)
        self._thread.start()
        logger.info("Worker started (concurrency 1)")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop taking new jobs and wait for the in-flight one to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Worker did not drain before the timeout; job will be recovered as stalled")
        logger.info("Worker stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, timeout: Optional[float] = 0) -> Optional[dict]:
        """Claim and execute at most one job. Returns the execution status, or None if idle."""
        job = self._queue.dequeue(timeout=timeout)
        if job is None:
            return None
        logger.debug(f"Executing {job!r}")
        return self._executor.execute(job)

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once(timeout=self._poll_interval)
            except Exception as e:
                logger.error(f"Worker loop error: {e}", exc_info=True)
                self._stop_event.wait(self._poll_interval)
