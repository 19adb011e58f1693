"""
Scheduler Engine — the queue's clock.

This runs in a daemon thread inside the worker process.
Every SCHEDULER_POLL_INTERVAL seconds (configurable), it executes this loop:

    1. Fire repeating registrations whose cron tick is due
       → one occurrence job per tick lands in the waiting set
    2. Promote delayed jobs whose backoff has elapsed
       → they become claimable again
    3. Requeue stalled jobs whose claim lock expired
       → a crashed worker's job is retried instead of lost

The engine doesn't execute jobs — it only moves them between queue states.
Several worker processes may each run an engine against the same Redis;
the queue's atomic operations keep their ticks from double-firing.

         repeat hash          delayed / active          waiting set
    ┌──────────────┐       ┌──────────────────┐      ┌────────────┐
    │ cron regs    │──────>│ due by timestamp │─────>│ priority + │
    │              │ fire  │                  │ move │ FIFO order │
    └──────────────┘       └──────────────────┘      └────────────┘
"""

import logging
import threading

from config.settings import settings
from jobqueue.redis_queue import JobQueue

logger = logging.getLogger(__name__)


class SchedulerEngine:

    def __init__(self, queue: JobQueue, poll_interval: float = settings.SCHEDULER_POLL_INTERVAL):
        self._queue = queue
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the tick loop in a daemon thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="scheduler-engine", daemon=True
        )
        self._thread.start()
        logger.info(f"Scheduler engine started (tick every {self._poll_interval}s)")

    def stop(self) -> None:
        """Signal the loop to stop. It will finish its current tick and exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self._poll_interval * 2)
        logger.info("Scheduler engine stopped")

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler loop error: {e}", exc_info=True)
            self._stop_event.wait(self._poll_interval)

    def tick(self) -> dict:
        """One pass over the queue's time-based states. Returns counts for logging/tests."""
        fired = self._queue.fire_repeating()
        promoted = self._queue.promote_delayed()
        stalled = self._queue.requeue_stalled()
        if fired:
            logger.info(f"Fired {fired} scheduled occurrence(s)")
        return {"fired": fired, "promoted": promoted, "stalled": stalled}
