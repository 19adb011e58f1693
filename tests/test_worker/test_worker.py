"""
Tests for the Worker, JobExecutor and RetryHandler together.

The runner and report store are fakes; the queue and result cache are the
real classes on fakeredis. The core guarantee checked throughout: every
job ends in exactly one durable write, a report row for scheduled jobs or
a cache entry for on-demand jobs, never both.
"""

import logging
import threading

from analysis.errors import AnalysisFailedError, InvalidTargetError
from analysis.result import extract_result
from cache.result_cache import ResultCache
from jobqueue.job import Job, ScheduledPayload, UnknownPayload, on_demand_job
from jobqueue.redis_queue import JobQueue
from worker.worker import Worker


class FakeRunner:
    """Returns the next scripted outcome for each run() call."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def run(self, url, options=None):
        self.calls.append((url, options))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeStore:
    def __init__(self):
        self.saved = []

    def save_report(self, website_id, user_id, url, result):
        self.saved.append((website_id, user_id, url, result))
        return f"report-{len(self.saved)}"


class BrokenCache(ResultCache):
    def put_success(self, job_id, report, insights):
        raise ConnectionError("redis went away")


def _setup(redis_client, outcomes, cache_cls=ResultCache):
    queue = JobQueue(redis_client, prefix="test", poll_interval=0.01)
    runner = FakeRunner(outcomes)
    store = FakeStore()
    cache = cache_cls(redis_client)
    worker = Worker(queue, runner, store, cache, poll_interval=0.01)
    return queue, runner, store, cache, worker


def _scheduled_job(max_attempts=3) -> Job:
    return Job(
        id="website:W1:1767236400000",
        payload=ScheduledPayload(website_id="W1", user_id="user-1", url="https://example.com"),
        priority=5,
        max_attempts=max_attempts,
    )


def test_on_demand_success_writes_only_the_cache(redis_client, raw_report_factory):
    queue, runner, store, cache, worker = _setup(
        redis_client, [extract_result(raw_report_factory())]
    )
    job = on_demand_job("https://example.com")
    queue.enqueue(job)

    status = worker.run_once()

    assert status["status"] == "completed"
    entry = cache.peek(job.id)
    assert entry["report"]["seo"] == 92
    assert entry["saved"] is False
    assert entry["insights"][0]["category"] == "Performance"
    assert store.saved == []
    assert queue.counts()["active"] == 0


def test_on_demand_uses_fast_categories(redis_client, raw_report_factory):
    queue, runner, _, _, worker = _setup(redis_client, [extract_result(raw_report_factory())])
    queue.enqueue(on_demand_job("https://example.com"))

    worker.run_once()

    _, options = runner.calls[0]
    assert options.categories == ("seo",)


def test_scheduled_success_writes_only_storage(redis_client, raw_report_factory):
    queue, runner, store, cache, worker = _setup(
        redis_client, [extract_result(raw_report_factory())]
    )
    job = _scheduled_job()
    queue.enqueue(job)

    worker.run_once()

    assert len(store.saved) == 1
    assert store.saved[0][:3] == ("W1", "user-1", "https://example.com")
    assert not cache.exists(job.id)
    _, options = runner.calls[0]
    assert len(options.categories) == 5


def test_retryable_failure_writes_nothing_yet(redis_client):
    queue, _, store, cache, worker = _setup(redis_client, [AnalysisFailedError("flaky", 3)])
    job = on_demand_job("https://example.com")
    queue.enqueue(job)

    status = worker.run_once()

    assert status["disposition"] == "RETRYING"
    assert not cache.exists(job.id)
    assert queue.counts()["delayed"] == 1


def test_exhausted_on_demand_job_caches_the_error(redis_client):
    message = "Analysis failed after 3 attempts: boom"
    queue, _, store, cache, worker = _setup(redis_client, [AnalysisFailedError(message, 3)])
    job = on_demand_job("https://example.com")
    job.max_attempts = 1
    queue.enqueue(job)

    worker.run_once()

    assert cache.peek(job.id) == {"error": message}
    assert store.saved == []
    assert queue.dead_letters()[0]["job_id"] == job.id


def test_exhausted_scheduled_job_writes_no_report(redis_client):
    queue, _, store, cache, worker = _setup(redis_client, [AnalysisFailedError("down", 3)])
    queue.enqueue(_scheduled_job(max_attempts=1))

    worker.run_once()

    assert store.saved == []
    assert [e["kind"] for e in queue.dead_letters()] == ["scheduled"]


def test_invalid_target_is_not_retried(redis_client):
    queue, runner, _, cache, worker = _setup(
        redis_client, [InvalidTargetError("URL must use HTTP or HTTPS protocol")]
    )
    job = on_demand_job("https://example.com")
    queue.enqueue(job)

    status = worker.run_once()

    assert status["disposition"] == "FAILED"
    assert cache.peek(job.id) == {"error": "URL must use HTTP or HTTPS protocol"}
    assert len(runner.calls) == 1


def test_unknown_kind_is_acknowledged_without_running(redis_client, caplog):
    queue, runner, store, cache, worker = _setup(redis_client, [])
    queue.enqueue(Job(id="mystery", payload=UnknownPayload("legacy", {}), priority=5))

    with caplog.at_level(logging.WARNING):
        status = worker.run_once()

    assert status["status"] == "skipped"
    assert runner.calls == []
    assert queue.get_job("mystery") is None
    assert queue.dead_letters() == []
    assert "unknown kind" in caplog.text


def test_cache_write_failure_is_logged_not_retried(redis_client, raw_report_factory, caplog):
    queue, runner, _, _, worker = _setup(
        redis_client, [extract_result(raw_report_factory())], cache_cls=BrokenCache
    )
    queue.enqueue(on_demand_job("https://example.com"))

    with caplog.at_level(logging.CRITICAL):
        status = worker.run_once()

    assert status["status"] == "completed"
    assert status["cached"] is False
    assert queue.counts()["delayed"] == 0
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


def test_idle_worker_returns_none(redis_client):
    _, _, _, _, worker = _setup(redis_client, [])
    assert worker.run_once() is None


def test_background_worker_processes_and_drains(redis_client, raw_report_factory):
    queue, _, store, _, worker = _setup(redis_client, [extract_result(raw_report_factory())])
    done = threading.Event()
    worker.on_completed(lambda job, result: done.set())

    worker.start()
    try:
        queue.enqueue(_scheduled_job())
        assert done.wait(timeout=5)
    finally:
        worker.stop(timeout=5)

    assert not worker.running
    assert len(store.saved) == 1


def test_failure_event_reaches_worker_listeners(redis_client):
    queue, _, _, _, worker = _setup(redis_client, [AnalysisFailedError("down", 3)])
    failures = []
    worker.on_failed(lambda job, error: failures.append((job.id, error)))
    job = on_demand_job("https://example.com")
    job.max_attempts = 1
    queue.enqueue(job)

    worker.run_once()

    assert failures == [(job.id, "down")]
