"""
Analysis runner — one audit of one URL, with its own retry loop.

Each attempt:
    1. release leftover measurement state
    2. launch a fresh browser host
    3. warm-up pause
    4. audit with a hard timeout
    5. extract the result
    6. ALWAYS close the host and release measurement state (finally block)

Between attempts: exponential backoff (base 2s, doubling) plus up to 1s of
random jitter so retries against a flaky site do not line up.

These retries cover browser/launch flakiness inside a single queue attempt.
The job queue retries the whole run again (with its own, longer backoff) if
every attempt here fails. The two layers are intentionally separate.

After the last attempt the failure is classified and raised as a typed
AnalysisError; the original exception is kept as __cause__.
"""

import logging
import random
import time
from typing import Callable, Optional

from config.settings import settings
from analysis.engine import AuditEngine, BrowserHost
from analysis.errors import (
    AnalysisError,
    AnalysisFailedError,
    InvalidTargetError,
    NavigationError,
    PageCrashedError,
    ProtocolError,
    TargetClosedError,
    TimingConflictError,
)
from analysis.profiles import AnalysisOptions, engine_config
from analysis.result import AnalysisResult, extract_result
from analysis.targets import check_target_url

logger = logging.getLogger(__name__)


def classify_failure(error: Exception, attempts: int) -> AnalysisError:
    """Map the last attempt's exception to a typed error with a user-facing message."""
    message = str(error)
    if isinstance(error, TargetClosedError) or type(error).__name__ == "TargetCloseError":
        return PageCrashedError(
            f"The page crashed during analysis after {attempts} attempts. "
            "This can happen on complex websites or due to memory constraints.",
            attempts,
        )
    if isinstance(error, ProtocolError) or "PROTOCOL_ERROR" in message:
        return NavigationError(
            f"Could not navigate to the URL after {attempts} attempts. "
            "It might be invalid or the page may have crashed.",
            attempts,
        )
    if "performance mark" in message.lower():
        return TimingConflictError(
            f"Performance timing error after {attempts} attempts. This is usually caused "
            "by conflicting performance measurements. Try restarting the service.",
            attempts,
        )
    return AnalysisFailedError(f"Analysis failed after {attempts} attempts: {message}", attempts)


class AnalysisRunner:

    def __init__(
        self,
        engine: AuditEngine,
        base_delay: float = settings.ANALYSIS_RETRY_BASE_DELAY,
        jitter: float = settings.ANALYSIS_RETRY_JITTER,
        cleanup_pause: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._engine = engine
        self._base_delay = base_delay
        self._jitter = jitter
        self._cleanup_pause = cleanup_pause
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the 0-based `attempt` failed."""
        return self._base_delay * (2 ** attempt) + random.uniform(0, self._jitter)

    def run(self, url: str, options: Optional[AnalysisOptions] = None) -> AnalysisResult:
        options = options or AnalysisOptions()
        check_target_url(url)
        config = engine_config(options)

        last_error: Optional[Exception] = None
        for attempt in range(options.max_attempts):
            try:
                result = self._attempt(url, options, config)
                logger.info(
                    f"Analysis of {url} succeeded on attempt {attempt + 1}/{options.max_attempts}"
                )
                return result
            except InvalidTargetError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"Attempt {attempt + 1} failed for {url}: {e}")

            if attempt < options.retries:
                self._sleep(self.backoff_delay(attempt))

        if last_error is None:
            raise AnalysisFailedError("Unexpected error: no attempts were made")
        raise classify_failure(last_error, options.max_attempts) from last_error

    def _attempt(self, url: str, options: AnalysisOptions, config: dict) -> AnalysisResult:
        host: Optional[BrowserHost] = None
        try:
            self._release()
            host = self._engine.launch()
            self._sleep(options.warmup)
            raw = self._engine.audit(url, host, config, options.timeout)
            if not raw:
                raise AnalysisFailedError("Lighthouse analysis failed - no results returned")
            return extract_result(raw)
        finally:
            if host is not None:
                try:
                    host.close()
                except Exception as close_error:
                    logger.warning(f"Error closing browser: {close_error}")
            self._release()

    def _release(self) -> None:
        self._engine.release_measurements()
        if self._cleanup_pause:
            self._sleep(self._cleanup_pause)

    def run_batch(
        self,
        urls: list[str],
        options: Optional[AnalysisOptions] = None,
        pause: float = settings.BATCH_PAUSE_SECONDS,
    ) -> list[dict]:
        """
        Audit several URLs one after another. Failures are collected, not raised.

        Returns [{"url": ..., "report": AnalysisResult} | {"url": ..., "error": str}]
        """
        results = []
        for url in urls:
            logger.info(f"Analyzing: {url}")
            try:
                results.append({"url": url, "report": self.run(url, options)})
            except AnalysisError as e:
                logger.error(f"Failed to analyze {url}: {e}")
                results.append({"url": url, "error": str(e)})
            self._sleep(pause)
        return results
