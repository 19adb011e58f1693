"""
Website CRUD endpoints.

POST   /websites/       → Register a website (and its cron schedule, if any)
GET    /websites/       → List the caller's websites
GET    /websites/{id}   → One website plus its five most recent reports
PUT    /websites/{id}   → Update name and/or cron; cron changes resync the schedule
DELETE /websites/{id}   → Unschedule, then delete the website and its reports

The database row is the source of truth for `cron`; the schedule manager
makes the queue's repeating registration follow it. Schedule changes are
applied only after the row is committed, so a failed write never leaves a
registration behind for a website that does not exist.

If Redis is unreachable when the registration is applied, the row change is
undone (a created website is removed, an update is reverted and the previous
registration re-applied) and the request fails with 503, so the row never
keeps a cron that nothing is scheduling.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.auth import get_current_user
from api.dependencies import get_db, get_schedule_manager
from api.schemas.website import WebsiteCreate, WebsiteResponse, WebsiteUpdate
from models.website import Website
from scheduler.schedule_manager import ScheduleManager
from storage.reports import delete_website_reports, get_website_reports

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/websites", tags=["websites"])

SCHEDULER_UNAVAILABLE = "Scheduler unavailable, the website was not changed"


async def _get_owned_website(db: AsyncSession, website_id: str, user_id: str) -> Website:
    result = await db.execute(
        select(Website).where(Website.id == website_id, Website.user_id == user_id)
    )
    website = result.scalar_one_or_none()
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")
    return website


async def _restore_schedule(schedules: ScheduleManager, website: Website, user_id: str) -> None:
    """Re-apply the reverted cron. Re-registering the same pattern keeps its phase."""
    try:
        await run_in_threadpool(
            schedules.sync, website.id, user_id, website.url, None, website.cron
        )
    except RedisError:
        logger.error(f"Could not restore schedule for website {website.id}", exc_info=True)


@router.post("/", response_model=WebsiteResponse, status_code=201)
async def create_website(
    website_in: WebsiteCreate,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    schedules: ScheduleManager = Depends(get_schedule_manager),
) -> WebsiteResponse:
    existing = await db.execute(
        select(Website.id).where(Website.user_id == user_id, Website.url == website_in.url)
    )
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="Website already exists")

    website = Website(
        user_id=user_id,
        url=website_in.url,
        name=website_in.name,
        cron=website_in.cron,
    )
    db.add(website)
    await db.commit()
    await db.refresh(website)

    if website.cron:
        try:
            await run_in_threadpool(
                schedules.schedule, website.id, user_id, website.url, website.cron
            )
        except RedisError:
            logger.error(f"Could not schedule website {website.id}, removing it", exc_info=True)
            await db.delete(website)
            await db.commit()
            raise HTTPException(status_code=503, detail=SCHEDULER_UNAVAILABLE)
    return WebsiteResponse.model_validate(website)


@router.get("/", response_model=list[WebsiteResponse])
async def list_websites(
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[WebsiteResponse]:
    result = await db.execute(
        select(Website).where(Website.user_id == user_id).order_by(Website.created_at.desc())
    )
    return [WebsiteResponse.model_validate(w) for w in result.scalars().all()]


@router.get("/{website_id}")
async def get_website(
    website_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    website = await _get_owned_website(db, website_id, user_id)
    recent = await get_website_reports(db, website_id, user_id, limit=5)
    return {
        "website": WebsiteResponse.model_validate(website).model_dump(mode="json"),
        "recent_reports": recent,
    }


@router.put("/{website_id}", response_model=WebsiteResponse)
async def update_website(
    website_id: str,
    website_in: WebsiteUpdate,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    schedules: ScheduleManager = Depends(get_schedule_manager),
) -> WebsiteResponse:
    """
    Partial update. Only fields present in the body change; sending
    "cron": null (or "") removes the schedule.
    """
    website = await _get_owned_website(db, website_id, user_id)
    old_cron = website.cron

    changes = website_in.model_dump(exclude_unset=True)
    previous = {field: getattr(website, field) for field in changes}
    for field, value in changes.items():
        setattr(website, field, value)
    website.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(website)

    if "cron" in changes:
        try:
            await run_in_threadpool(
                schedules.sync, website.id, user_id, website.url, old_cron, website.cron
            )
        except RedisError:
            logger.error(
                f"Could not resync schedule for website {website.id}, reverting", exc_info=True
            )
            for field, value in previous.items():
                setattr(website, field, value)
            await db.commit()
            await _restore_schedule(schedules, website, user_id)
            raise HTTPException(status_code=503, detail=SCHEDULER_UNAVAILABLE)
    return WebsiteResponse.model_validate(website)


@router.delete("/{website_id}", status_code=204)
async def delete_website(
    website_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    schedules: ScheduleManager = Depends(get_schedule_manager),
) -> None:
    website = await _get_owned_website(db, website_id, user_id)

    # Stop future occurrences first so none fires for a half-deleted website
    if website.cron:
        await run_in_threadpool(schedules.unschedule, website.id)

    await delete_website_reports(db, website.id)
    await db.delete(website)
    await db.commit()
    logger.info(f"Deleted website {website_id} and its reports")
