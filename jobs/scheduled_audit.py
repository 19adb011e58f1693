"""
Scheduled audit — one cron occurrence for a stored website.

Runs the full five-category audit and persists the report, which also stamps
the website's last_analyzed_at. Failures propagate so the queue can retry;
when retries are exhausted the occurrence lands in the dead-letter list and
nothing is written to report storage.
"""

import logging

from analysis.profiles import AnalysisOptions
from analysis.runner import AnalysisRunner
from jobqueue.job import Job
from jobs.base import AbstractJobHandler
from models.enums import JobKind
from storage.reports import ReportStore

logger = logging.getLogger(__name__)


class ScheduledAuditHandler(AbstractJobHandler):

    def __init__(self, runner: AnalysisRunner, store: ReportStore):
        self._runner = runner
        self._store = store

    def run(self, job: Job) -> dict:
        payload = job.payload
        logger.info(f"Starting analysis for {payload.url} (Job ID: {job.id})")

        result = self._runner.run(payload.url, AnalysisOptions())
        report_id = self._store.save_report(
            website_id=payload.website_id,
            user_id=payload.user_id,
            url=payload.url,
            result=result,
        )
        return {"report_id": report_id, "url": result.url}

    @property
    def kind(self) -> JobKind:
        return JobKind.SCHEDULED
