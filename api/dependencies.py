"""
FastAPI dependency injection.

How this works:
- An endpoint declares `db: AsyncSession = Depends(get_db)`
- FastAPI calls get_db() before your endpoint runs, creating a DB session
- Your endpoint receives the session and uses it
- After the endpoint returns (or raises), the session is automatically closed

The queue, result cache and schedule manager are thin wrappers around the
Redis client, so they are built per request from get_redis. Overriding
get_redis in tests swaps all of them at once.
"""

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from redis import Redis

from models.base import AsyncSessionLocal
from cache.result_cache import ResultCache
from jobqueue.redis_queue import JobQueue
from scheduler.schedule_manager import ScheduleManager


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yields an async database session, auto-closes when the request ends."""
    async with AsyncSessionLocal() as session:
        yield session


async def get_redis(request: Request) -> Redis:
    """Returns the Redis client stored on the app during startup."""
    return request.app.state.redis


async def get_queue(redis: Redis = Depends(get_redis)) -> JobQueue:
    return JobQueue(redis)


async def get_result_cache(redis: Redis = Depends(get_redis)) -> ResultCache:
    return ResultCache(redis)


async def get_schedule_manager(queue: JobQueue = Depends(get_queue)) -> ScheduleManager:
    return ScheduleManager(queue)
