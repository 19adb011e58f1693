"""Errors raised by the job queue and the schedule manager."""


class QueueError(Exception):
    """Base class for job queue errors."""


class InvalidScheduleError(QueueError, ValueError):
    """A cron expression was empty or could not be parsed."""
