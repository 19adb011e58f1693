"""
Result cache — hands finished on-demand audits from the worker to the poller.

    key    result:<job_id>
    value  JSON {"report": {...}, "insights": [...], "saved": false}
           or   {"error": "<message>"}
    TTL    600 seconds

The polling endpoint consumes the key with GETDEL, so a success is delivered
once. An expired key looks exactly like a job that has not finished yet:
there is no durable terminal marker, a poller that comes back after the TTL
sees "pending" until its own client-side timeout fires.
"""

import json
import logging
from typing import Optional

from redis import Redis

from config.settings import settings

logger = logging.getLogger(__name__)


def result_key(job_id: str) -> str:
    return f"result:{job_id}"


class ResultCache:

    def __init__(self, redis_client: Redis, ttl: int = settings.RESULT_TTL_SECONDS):
        self._redis = redis_client
        self._ttl = ttl

    def put_success(self, job_id: str, report: dict, insights: list[dict]) -> None:
        value = {"report": report, "insights": insights, "saved": False}
        self._redis.set(result_key(job_id), json.dumps(value), ex=self._ttl)
        logger.debug(f"Cached result for job {job_id}")

    def put_error(self, job_id: str, message: str) -> None:
        self._redis.set(result_key(job_id), json.dumps({"error": message}), ex=self._ttl)
        logger.debug(f"Cached error for job {job_id}")

    def peek(self, job_id: str) -> Optional[dict]:
        raw = self._redis.get(result_key(job_id))
        return json.loads(raw) if raw is not None else None

    def consume(self, job_id: str) -> Optional[dict]:
        """Read and delete in one step. None means pending, unknown or expired."""
        raw = self._redis.getdel(result_key(job_id))
        return json.loads(raw) if raw is not None else None

    def exists(self, job_id: str) -> bool:
        return bool(self._redis.exists(result_key(job_id)))
