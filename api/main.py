"""
FastAPI application factory.

This file:
1. Creates the FastAPI app
2. Runs startup logic (create DB tables, connect to Redis)
3. Registers all routers (health, analysis, websites, reports, scheduler)
4. Runs shutdown logic (close connections)

The API never runs audits. It enqueues jobs, keeps website schedules in
sync with the queue, and reads results back; the worker process
(python -m worker.main) does the rest.

To run:  uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis import Redis

from config.settings import settings
from models.base import async_engine, Base
from api.routers import analysis, health, reports, scheduler, websites

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Runs on startup (before yield) and shutdown (after yield).

    Startup:
    - Creates all DB tables if they don't exist (safe to run multiple times)
    - Connects to Redis (sync client, shared with the queue code the worker uses)

    Shutdown:
    - Closes Redis connection
    - Disposes the DB engine (closes connection pool)
    """
    logger.info("Creating database tables...")
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.state.redis = Redis.from_url(settings.redis_url)
    logger.info(f"API ready ({settings.ENVIRONMENT})")

    yield

    app.state.redis.close()
    await async_engine.dispose()
    logger.info("API shut down")


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    app = FastAPI(
        title="Site Auditor",
        description="Scheduled and on-demand website audits on a Redis-backed job queue",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(analysis.router)
    app.include_router(websites.router)
    app.include_router(reports.router)
    app.include_router(scheduler.router)

    return app


# This is what uvicorn imports: `uvicorn api.main:app`
app = create_app()
