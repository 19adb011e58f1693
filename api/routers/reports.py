"""
Report endpoints — read and delete persisted scheduled audits.

GET    /reports                        → The caller's reports, newest first
GET    /reports/{id}                   → One report with insights (raw report stripped)
GET    /websites/{website_id}/reports  → A website's reports, sortable
DELETE /reports/{id}                   → Delete one report

Insights are computed on read from the stored scores and metrics; they are
never persisted.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from analysis.insights import generate_insights
from api.auth import get_current_user
from api.dependencies import get_db
from api.schemas.website import WebsiteResponse
from models.enums import ReportSortField, SortOrder
from models.website import Website
from storage.reports import (
    delete_report,
    get_report_by_id,
    get_user_reports,
    get_website_reports,
    report_to_dict,
)

router = APIRouter(tags=["reports"])


@router.get("/reports")
async def list_reports(
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    reports = await get_user_reports(db, user_id, limit=limit, offset=offset)
    return {
        "reports": reports,
        "pagination": {"limit": limit, "offset": offset, "total": len(reports)},
    }


@router.get("/reports/{report_id}")
async def get_report(
    report_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    report = await get_report_by_id(db, report_id, user_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return {
        "report": report_to_dict(report),
        "insights": generate_insights(report.scores(), report.metrics),
    }


@router.get("/websites/{website_id}/reports")
async def list_website_reports(
    website_id: str,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort_by: ReportSortField = Query(ReportSortField.CREATED_AT, alias="sortBy"),
    order: SortOrder = Query(SortOrder.DESC),
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await db.execute(
        select(Website).where(Website.id == website_id, Website.user_id == user_id)
    )
    website = result.scalar_one_or_none()
    if website is None:
        raise HTTPException(status_code=404, detail="Website not found")

    reports = await get_website_reports(
        db, website_id, user_id, limit=limit, offset=offset, sort_by=sort_by, order=order
    )
    return {
        "website": WebsiteResponse.model_validate(website).model_dump(mode="json"),
        "reports": reports,
        "pagination": {"limit": limit, "offset": offset, "total": len(reports)},
    }


@router.delete("/reports/{report_id}", status_code=204)
async def remove_report(
    report_id: str,
    user_id: str = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    report = await get_report_by_id(db, report_id, user_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    await delete_report(db, report_id, user_id)
