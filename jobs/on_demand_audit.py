"""
On-demand audit — an interactive request whose client is polling.

Runs the fast category subset (SEO only unless the client asked for specific
categories) and hands the result to the polling endpoint through the result
cache. A terminal failure writes an error entry under the same key so the
client gets an answer instead of polling until its own timeout.

Cache write failures are not retried: re-running a finished audit just to
retry a Redis write would make the client wait twice as long. The result is
lost, the condition is logged as critical, and the client times out.
"""

import logging

from analysis.insights import generate_insights
from analysis.profiles import AnalysisOptions
from analysis.runner import AnalysisRunner
from cache.result_cache import ResultCache
from jobqueue.job import Job
from jobs.base import AbstractJobHandler
from models.enums import JobKind

logger = logging.getLogger(__name__)


class OnDemandAuditHandler(AbstractJobHandler):

    def __init__(self, runner: AnalysisRunner, cache: ResultCache):
        self._runner = runner
        self._cache = cache

    def run(self, job: Job) -> dict:
        payload = job.payload
        options = AnalysisOptions.on_demand(payload.categories, payload.form_factor)
        logger.info(f"Starting on-demand analysis for {payload.url} (Job ID: {job.id})")

        result = self._runner.run(payload.url, options)
        insights = generate_insights(result.scores(), result.metrics)

        try:
            self._cache.put_success(job.id, result.to_public_dict(), insights)
        except Exception:
            logger.critical(
                f"Analysis for job {job.id} succeeded but the result could not be cached; "
                "the client will time out",
                exc_info=True,
            )
            return {"cached": False, "url": result.url}
        return {"cached": True, "url": result.url}

    def on_terminal_failure(self, job: Job, error: str) -> None:
        self._cache.put_error(job.id, error)

    @property
    def kind(self) -> JobKind:
        return JobKind.ON_DEMAND
