"""
Typed errors for the analysis runner.

Transient failures (AnalysisError subclasses) are retried by the runner's own
loop and then again by the job queue. InvalidTargetError is a permanent input
failure: neither layer retries it.

Each subclass carries the user-facing message the polling client eventually
sees; the original exception is chained as __cause__.
"""


class AnalysisError(Exception):
    """Base class for audit failures after the runner exhausted its attempts."""

    retryable = True

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class PageCrashedError(AnalysisError):
    """The target page (browser tab) crashed or closed mid-audit."""


class NavigationError(AnalysisError):
    """The browser could not navigate to the URL (protocol-level failure)."""


class TimingConflictError(AnalysisError):
    """Conflicting performance marks inside the engine's timing instrumentation."""


class AnalysisFailedError(AnalysisError):
    """Any other audit failure."""


class InvalidTargetError(AnalysisError):
    """The URL is malformed or points at a disallowed host. Never retried."""

    retryable = False


# ── Per-attempt errors raised by audit engines ─────────────────


class AttemptError(Exception):
    """Raised by an AuditEngine for a single failed attempt."""


class TargetClosedError(AttemptError):
    """The page or browser target closed during the audit."""


class ProtocolError(AttemptError):
    """DevTools protocol failure while driving the browser."""


class AttemptTimeoutError(AttemptError):
    """The attempt exceeded its hard timeout."""


class EngineLaunchError(AttemptError):
    """The browser host process could not be started."""
