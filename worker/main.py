"""
Worker process entry point.

This is a SEPARATE process from the FastAPI API server.
It runs two components in the same process:

    1. SchedulerEngine — fires due cron registrations, promotes
       delayed retries, recovers stalled jobs
    2. Worker — claims jobs from the queue and runs the audits

Both run as daemon threads. The main thread just waits for
Ctrl+C (SIGINT) or a kill signal (SIGTERM) to shut down gracefully.

To run:
    python -m worker.main

Several worker processes can share one Redis: each job is claimed by
exactly one of them and every engine's tick is idempotent.
"""

import logging
import signal
import threading

from redis import Redis

from config.settings import settings
from models.base import Base, sync_engine, SyncSessionLocal
from analysis.engine import ChromeLighthouseEngine
from analysis.runner import AnalysisRunner
from cache.result_cache import ResultCache
from jobqueue.redis_queue import JobQueue
from scheduler.engine import SchedulerEngine
from storage.reports import ReportStore
from worker.worker import Worker

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    # Reports are written by this process, so the tables must exist even
    # when the API has not started yet. create_all is a no-op otherwise.
    logger.info("Ensuring database tables exist...")
    Base.metadata.create_all(sync_engine)

    redis_client = Redis.from_url(settings.redis_url)
    queue = JobQueue(redis_client)

    engine = SchedulerEngine(queue)
    engine.start()

    worker = Worker(
        queue,
        runner=AnalysisRunner(ChromeLighthouseEngine()),
        storage=ReportStore(SyncSessionLocal),
        cache=ResultCache(redis_client),
    )
    worker.start()

    # ── Graceful shutdown on Ctrl+C or SIGTERM ──────────────────
    shutdown_event = threading.Event()

    def shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, shutdown)
    signal.signal(signal.SIGINT, shutdown)

    logger.info("Worker process running. Press Ctrl+C to stop.")

    # Event.wait() instead of signal.pause() for Windows compatibility
    shutdown_event.wait()

    engine.stop()
    worker.stop()
    redis_client.close()
    logger.info("Worker process exited")


if __name__ == "__main__":
    main()
