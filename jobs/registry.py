"""
Job handler registry — maps job kinds to handler instances.

When the worker pulls a job from the queue, it knows the job's kind
but needs the handler that executes it. This registry does that lookup.
Handlers need the runner/storage/cache collaborators, so the registry is
built once per Worker instead of at import time.
"""

from analysis.runner import AnalysisRunner
from cache.result_cache import ResultCache
from jobs.base import AbstractJobHandler
from jobs.on_demand_audit import OnDemandAuditHandler
from jobs.scheduled_audit import ScheduledAuditHandler
from models.enums import JobKind
from storage.reports import ReportStore


def build_handlers(
    runner: AnalysisRunner, store: ReportStore, cache: ResultCache
) -> dict[JobKind, AbstractJobHandler]:
    handlers = [
        ScheduledAuditHandler(runner, store),
        OnDemandAuditHandler(runner, cache),
    ]
    return {handler.kind: handler for handler in handlers}
