"""
Abstract base class for job handlers.

Each job kind (scheduled, on_demand) implements this interface.
The executor calls handler.run(job) without knowing which kind it is —
it looks up the handler from the registry by job.kind.

Strategy pattern:
- AbstractJobHandler = interface
- ScheduledAuditHandler, OnDemandAuditHandler = implementations
- registry.py = factory lookup
"""

from abc import ABC, abstractmethod

from jobqueue.job import Job
from models.enums import JobKind


class AbstractJobHandler(ABC):

    @abstractmethod
    def run(self, job: Job) -> dict:
        """
        Execute the job.

        Returns:
            dict summarizing the outcome, used for logging only.

        Raises:
            Any exception → handed to the queue's retry machinery.
        """
        ...

    def on_terminal_failure(self, job: Job, error: str) -> None:
        """Called once when the queue gives up on the job. Default: nothing to record."""

    @property
    @abstractmethod
    def kind(self) -> JobKind:
        ...
