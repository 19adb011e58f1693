"""
Durable job queue on Redis.

Layout (all keys share a prefix, "audit" by default):

    <p>:job:<id>   JSON job record (created with SET NX → duplicate ids are dropped)
    <p>:waiting    ZSET, score = priority * 1e13 + sequence  → priority first, then FIFO
    <p>:delayed    ZSET, score = ready-at timestamp           → backoff retries
    <p>:active     ZSET, score = lock deadline                → claimed, not yet acked
    <p>:repeat     HASH, id → repeating registration JSON
    <p>:failed     LIST, dead-letter summaries of exhausted jobs

Lifecycle:

    enqueue ──> waiting ──dequeue──> active ──ack──> (removed)
                  ▲                    │
                  │                  fail
                  │                    ├── attempts left ──> delayed ──promote──┐
                  └────────────────────┼────────────────────────────────────────┘
                                       └── exhausted ──> failed list + failure event

Every move between sets is one WATCH/MULTI/EXEC transaction: the job leaves
its old set and lands in the new one together, or not at all. A worker that
dies mid-move leaves the job where it was, never in no set. A WatchError means
another process changed the same keys first; the loser re-reads or gives up.
That is the only thing preventing double execution across worker processes;
there is no in-process locking.

A claimed job whose lock deadline passes without ack/fail (worker crashed) is
treated as a failed attempt by requeue_stalled(), so it becomes claimable again.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from croniter import croniter
from redis import Redis
from redis.exceptions import WatchError

from config.settings import settings
from jobqueue.errors import InvalidScheduleError
from jobqueue.job import Job, Payload, RepeatingRegistration
from models.enums import FailureDisposition

logger = logging.getLogger(__name__)

# Larger than any sequence number we will realistically hand out
PRIORITY_SCALE = 10 ** 13

FailedListener = Callable[[Job, str], None]


def _text(value) -> str:
    return value.decode() if isinstance(value, bytes) else value


def next_fire_time(pattern: str, after: float) -> float:
    """Next cron firing strictly after the `after` timestamp (UTC)."""
    if not pattern or not pattern.strip():
        raise InvalidScheduleError("Cron expression must not be empty")
    if not croniter.is_valid(pattern):
        raise InvalidScheduleError(f"Invalid cron expression: {pattern}")
    start = datetime.fromtimestamp(after, tz=timezone.utc)
    return croniter(pattern, start).get_next(float)


class JobQueue:

    def __init__(
        self,
        redis_client: Redis,
        prefix: str = settings.QUEUE_PREFIX,
        lock_duration: float = settings.WORKER_LOCK_DURATION,
        poll_interval: float = settings.WORKER_POLL_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self._redis = redis_client
        self._prefix = prefix
        self._lock_duration = lock_duration
        self._poll_interval = poll_interval
        self._clock = clock
        self._failed_listeners: list[FailedListener] = []

        self.WAITING = f"{prefix}:waiting"
        self.DELAYED = f"{prefix}:delayed"
        self.ACTIVE = f"{prefix}:active"
        self.REPEAT = f"{prefix}:repeat"
        self.FAILED = f"{prefix}:failed"
        self.SEQUENCE = f"{prefix}:seq"
        self.COMPLETED = f"{prefix}:completed"

    def _job_key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    # ── Events ──────────────────────────────────────────────────

    def on_failed(self, listener: FailedListener) -> None:
        """Subscribe to terminal failures. Called with (job, error) before the job is removed."""
        self._failed_listeners.append(listener)

    def _emit_failed(self, job: Job, error: str) -> None:
        for listener in self._failed_listeners:
            try:
                listener(job, error)
            except Exception:
                logger.critical(
                    f"Failure listener raised while handling job {job.id}", exc_info=True
                )

    # ── Enqueue / claim ─────────────────────────────────────────

    def enqueue(self, job: Job, delay: float = 0.0) -> bool:
        """
        Add a job. Returns False when a job with the same id is already queued,
        which is what makes cron occurrences idempotent across processes.

        The record and its set entry are written in one MULTI/EXEC, so a job is
        never left with a record but no place in the queue.
        """
        job_key = self._job_key(job.id)
        sequence = None if delay > 0 else self._redis.incr(self.SEQUENCE)
        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(job_key)
                if pipe.exists(job_key):
                    logger.debug(f"Job {job.id} already queued, skipping duplicate")
                    return False
                pipe.multi()
                pipe.set(job_key, json.dumps(job.to_dict()))
                if delay > 0:
                    pipe.zadd(self.DELAYED, {job.id: self._clock() + delay})
                else:
                    pipe.zadd(self.WAITING, {job.id: job.priority * PRIORITY_SCALE + sequence})
                pipe.execute()
            except WatchError:
                # Another process created the same id first
                logger.debug(f"Job {job.id} already queued, skipping duplicate")
                return False

        logger.info(f"Enqueued {job!r}" + (f" with delay {delay:.1f}s" if delay else ""))
        return True

    def dequeue(self, timeout: Optional[float] = None) -> Optional[Job]:
        """
        Claim the next ready job, waiting up to `timeout` seconds (forever if None).

        Polls rather than using a blocking pop so the loop can also notice
        a stop request from the worker between polls.
        """
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            job = self._claim()
            if job is not None:
                return job
            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    return None
                time.sleep(min(self._poll_interval, remaining))
            else:
                time.sleep(self._poll_interval)

    def _claim(self) -> Optional[Job]:
        """
        Move the head of the waiting set into the active set.

        The removal from waiting and the lock in active commit together: if the
        connection drops before EXEC the job is still waiting, afterwards it is
        active with a deadline that requeue_stalled() will notice.
        """
        while True:
            with self._redis.pipeline() as pipe:
                try:
                    pipe.watch(self.WAITING)
                    head = pipe.zrange(self.WAITING, 0, 0)
                    if not head:
                        return None
                    job_id = _text(head[0])
                    job_key = self._job_key(job_id)
                    pipe.watch(job_key)
                    raw = pipe.get(job_key)

                    pipe.multi()
                    pipe.zrem(self.WAITING, job_id)
                    if raw is not None:
                        pipe.zadd(self.ACTIVE, {job_id: self._clock() + self._lock_duration})
                    pipe.execute()
                except WatchError:
                    # Another worker claimed or enqueued first; look again
                    continue

            if raw is None:
                # Record was removed (acked by a stalled worker); try the next one
                logger.warning(f"Job {job_id} has no record, dropping from waiting set")
                continue

            job = Job.from_dict(json.loads(raw))
            logger.debug(f"Claimed {job!r}")
            return job


    # ── Completion ──────────────────────────────────────────────

    def ack(self, job: Job) -> None:
        """Mark a claimed job done and remove it."""
        pipe = self._redis.pipeline()
        pipe.zrem(self.ACTIVE, job.id)
        pipe.delete(self._job_key(job.id))
        pipe.incr(self.COMPLETED)
        pipe.execute()
        logger.debug(f"Acked job {job.id}")

    def fail(self, job: Job, error: str, retryable: bool = True) -> FailureDisposition:
        """
        Record a failed attempt.

        attempts left → back to the delayed set with exponential backoff
        exhausted (or not retryable) → dead-letter list, failure event, removed
        """
        job.attempts_made += 1
        job.failed_reason = error

        if retryable and job.attempts_made < job.max_attempts:
            delay = job.backoff.delay_for(job.attempts_made)
            pipe = self._redis.pipeline()
            pipe.set(self._job_key(job.id), json.dumps(job.to_dict()), xx=True)
            pipe.zrem(self.ACTIVE, job.id)
            pipe.zadd(self.DELAYED, {job.id: self._clock() + delay})
            pipe.execute()
            logger.info(
                f"Job {job.id} will be retried in {delay:.1f}s "
                f"({job.attempts_made}/{job.max_attempts})"
            )
            return FailureDisposition.RETRYING

        # Listeners run before removal so their side effects are visible
        # by the time the job disappears from the queue.
        self._emit_failed(job, error)

        pipe = self._redis.pipeline()
        pipe.zrem(self.ACTIVE, job.id)
        pipe.delete(self._job_key(job.id))
        pipe.rpush(self.FAILED, json.dumps({
            "job_id": job.id,
            "kind": job.kind.value if job.kind else None,
            "payload": job.to_dict()["payload"],
            "error": error,
            "attempts_made": job.attempts_made,
            "failed_at": datetime.now(timezone.utc).isoformat(),
        }))
        pipe.execute()
        logger.warning(
            f"Job {job.id} failed permanently after {job.attempts_made} attempt(s): {error}"
        )
        return FailureDisposition.FAILED

    # ── Housekeeping (driven by the scheduler engine) ───────────

    def promote_delayed(self, now: Optional[float] = None) -> int:
        """Move delayed jobs whose backoff has elapsed into the waiting set."""
        now = self._clock() if now is None else now
        promoted = 0
        for raw_id in self._redis.zrangebyscore(self.DELAYED, "-inf", now):
            if self._promote(_text(raw_id), now):
                promoted += 1
        if promoted:
            logger.info(f"Promoted {promoted} delayed job(s)")
        return promoted

    def _promote(self, job_id: str, now: float) -> bool:
        """delayed → waiting in one transaction. False if another process got there first."""
        job_key = self._job_key(job_id)
        sequence = self._redis.incr(self.SEQUENCE)
        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(self.DELAYED, job_key)
                ready_at = pipe.zscore(self.DELAYED, job_id)
                if ready_at is None or ready_at > now:
                    return False
                raw = pipe.get(job_key)

                pipe.multi()
                pipe.zrem(self.DELAYED, job_id)
                if raw is not None:
                    job = Job.from_dict(json.loads(raw))
                    pipe.zadd(self.WAITING, {job_id: job.priority * PRIORITY_SCALE + sequence})
                pipe.execute()
            except WatchError:
                return False
        return raw is not None

    def requeue_stalled(self, now: Optional[float] = None) -> int:
        """Treat claims whose lock expired as failed attempts so they run again."""
        now = self._clock() if now is None else now
        stalled = 0
        for raw_id in self._redis.zrangebyscore(self.ACTIVE, "-inf", now):
            job = self._take_stalled(_text(raw_id), now)
            if job is None:
                continue
            logger.warning(f"Job {job.id} lock expired, treating as stalled")
            self.fail(job, "Job stalled: worker lock expired")
            stalled += 1
        return stalled

    def _take_stalled(self, job_id: str, now: float) -> Optional[Job]:
        """
        Re-lock an expired claim so exactly one process recovers it.

        The entry stays in the active set with a fresh deadline until fail()
        moves it on; a recoverer that dies in between leaves it to be found
        stalled again rather than lost.
        """
        job_key = self._job_key(job_id)
        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(self.ACTIVE, job_key)
                lock_deadline = pipe.zscore(self.ACTIVE, job_id)
                if lock_deadline is None or lock_deadline > now:
                    return None
                raw = pipe.get(job_key)

                pipe.multi()
                if raw is None:
                    pipe.zrem(self.ACTIVE, job_id)
                else:
                    pipe.zadd(self.ACTIVE, {job_id: self._clock() + self._lock_duration})
                pipe.execute()
            except WatchError:
                return None
        return Job.from_dict(json.loads(raw)) if raw is not None else None

    # ── Repeating (cron) registrations ──────────────────────────

    def register_repeating(
        self, registration_id: str, pattern: str, payload: Payload
    ) -> RepeatingRegistration:
        """
        Create or replace a repeating registration.

        Re-registering the same id with the same pattern keeps the existing
        next_run, so the schedule's phase is not reset.
        """
        next_run = next_fire_time(pattern, self._clock())
        existing = self.get_repeating(registration_id)
        if existing is not None and existing.pattern == pattern:
            registration = RepeatingRegistration(
                id=registration_id, pattern=pattern, payload=payload,
                next_run=existing.next_run,
            )
        else:
            registration = RepeatingRegistration(
                id=registration_id, pattern=pattern, payload=payload, next_run=next_run,
            )
        self._redis.hset(self.REPEAT, registration_id, json.dumps(registration.to_dict()))
        logger.info(f"Registered repeating job {registration_id} ({pattern})")
        return registration

    def deregister_repeating(self, registration_id: str) -> bool:
        """Remove a repeating registration. Missing ids are logged, not errors."""
        removed = self._redis.hdel(self.REPEAT, registration_id)
        if not removed:
            logger.warning(f"No repeating job {registration_id} to remove")
            return False
        logger.info(f"Removed repeating job {registration_id}")
        return True

    def get_repeating(self, registration_id: str) -> Optional[RepeatingRegistration]:
        raw = self._redis.hget(self.REPEAT, registration_id)
        if raw is None:
            return None
        return RepeatingRegistration.from_dict(json.loads(raw))

    def list_repeating(self) -> list[RepeatingRegistration]:
        registrations = [
            RepeatingRegistration.from_dict(json.loads(raw))
            for raw in self._redis.hvals(self.REPEAT)
        ]
        return sorted(registrations, key=lambda r: r.next_run)

    def fire_repeating(self, now: Optional[float] = None) -> int:
        """
        Enqueue one occurrence for every registration that is due, then advance
        it to its next cron tick. Missed ticks are not backfilled.
        """
        now = self._clock() if now is None else now
        fired = 0
        for registration in self.list_repeating():
            if registration.next_run > now:
                continue
            if not self._advance(registration, now):
                continue
            occurrence = Job(
                id=registration.occurrence_id(registration.next_run),
                payload=registration.payload,
                priority=settings.SCHEDULED_PRIORITY,
                schedule=registration.pattern,
            )
            if self.enqueue(occurrence):
                fired += 1
        return fired

    def _advance(self, registration: RepeatingRegistration, now: float) -> bool:
        """
        Move a due registration to its next tick. Only the caller that wins the
        WATCH/MULTI race fires the occurrence; a concurrent deregister also wins.
        """
        with self._redis.pipeline() as pipe:
            try:
                pipe.watch(self.REPEAT)
                current = pipe.hget(self.REPEAT, registration.id)
                if current is None:
                    return False
                stored = RepeatingRegistration.from_dict(json.loads(current))
                if stored.next_run != registration.next_run:
                    return False

                advanced = RepeatingRegistration(
                    id=stored.id, pattern=stored.pattern, payload=stored.payload,
                    next_run=next_fire_time(stored.pattern, now),
                )
                pipe.multi()
                pipe.hset(self.REPEAT, stored.id, json.dumps(advanced.to_dict()))
                pipe.execute()
                return True
            except WatchError:
                return False

    # ── Introspection ───────────────────────────────────────────

    def get_job(self, job_id: str) -> Optional[Job]:
        raw = self._redis.get(self._job_key(job_id))
        return Job.from_dict(json.loads(raw)) if raw is not None else None

    def dead_letters(self) -> list[dict]:
        return [json.loads(entry) for entry in self._redis.lrange(self.FAILED, 0, -1)]

    def counts(self) -> dict:
        completed = self._redis.get(self.COMPLETED)
        return {
            "waiting": self._redis.zcard(self.WAITING),
            "delayed": self._redis.zcard(self.DELAYED),
            "active": self._redis.zcard(self.ACTIVE),
            "failed": self._redis.llen(self.FAILED),
            "completed": int(completed) if completed else 0,
            "repeating": self._redis.hlen(self.REPEAT),
        }
