"""
Schedule manager — keeps a website's cron field and its repeating queue
registration in sync.

Each website owns at most one registration, keyed `website:<website_id>`,
so schedule/unschedule are idempotent no matter how often the website flow
calls them. Unscheduling only stops future occurrences; an occurrence already
claimed or retrying runs to completion.
"""

import logging
from typing import Optional

from jobqueue.errors import InvalidScheduleError
from jobqueue.job import ScheduledPayload, website_job_id
from jobqueue.redis_queue import JobQueue

logger = logging.getLogger(__name__)


class ScheduleManager:

    def __init__(self, queue: JobQueue):
        self._queue = queue

    def schedule(self, website_id: str, user_id: str, url: str, cron: str) -> None:
        if not cron or not cron.strip():
            raise InvalidScheduleError(f"Invalid cron expression: {cron!r}")

        job_id = website_job_id(website_id)
        self._queue.register_repeating(
            job_id,
            cron.strip(),
            ScheduledPayload(website_id=website_id, user_id=user_id, url=url),
        )
        logger.info(f"Scheduled analysis for {url} ({cron}) with job ID {job_id}")

    def unschedule(self, website_id: str) -> None:
        job_id = website_job_id(website_id)
        if self._queue.get_repeating(job_id) is None:
            logger.warning(f"Could not find scheduled job with ID {job_id} to remove.")
            return
        self._queue.deregister_repeating(job_id)
        logger.info(f"Removed scheduled analysis for job ID {job_id}")

    def sync(
        self,
        website_id: str,
        user_id: str,
        url: str,
        old_cron: Optional[str],
        new_cron: Optional[str],
    ) -> None:
        """
        Apply a cron field transition.

            unset → set        schedule
            set   → different  unschedule + schedule
            set   → unset      unschedule
            same  → same       nothing (re-registering would reset the phase)
        """
        old_cron = old_cron or None
        new_cron = new_cron or None
        if old_cron == new_cron:
            return
        if old_cron:
            self.unschedule(website_id)
        if new_cron:
            self.schedule(website_id, user_id, url, new_cron)
