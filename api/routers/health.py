"""
Health check endpoint.

This is the first thing you hit to verify the system is running.
It checks both Postgres and Redis connectivity.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from redis import Redis
from fastapi.concurrency import run_in_threadpool

from api.dependencies import get_db, get_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
) -> dict:
    """Check that the database and Redis are reachable."""
    await db.execute(text("SELECT 1"))
    await run_in_threadpool(redis.ping)
    return {"status": "healthy", "database": "ok", "redis": "ok"}
