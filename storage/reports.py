"""
Report storage.

Two sides, matching the two engines in models/base.py:
- ReportStore (sync) is used by the worker to persist scheduled audits.
  save_report writes the report row and stamps the website's
  last_analyzed_at in the same transaction: either both happen or neither.
- The async query functions are used by the API routers with the request's
  AsyncSession.

Listing queries never return raw_report; only get_report_by_id loads it.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update, delete, desc, asc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from models.report import Report
from models.website import Website
from models.enums import ReportSortField, SortOrder
from analysis.result import AnalysisResult

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    ReportSortField.CREATED_AT: Report.created_at,
    ReportSortField.PERFORMANCE: Report.performance,
    ReportSortField.SEO: Report.seo,
}


def report_to_dict(report: Report, include_raw: bool = False) -> dict:
    data = {
        "id": report.id,
        "website_id": report.website_id,
        "user_id": report.user_id,
        "url": report.url,
        **report.scores(),
        "metrics": report.metrics,
        "opportunities": report.opportunities,
        "diagnostics": report.diagnostics,
        "created_at": report.created_at.isoformat() if report.created_at else None,
    }
    if include_raw:
        data["raw_report"] = report.raw_report
    return data


class ReportStore:

    def __init__(self, db_session_factory):
        self._db_session_factory = db_session_factory

    def save_report(
        self, website_id: str, user_id: str, url: str, result: AnalysisResult
    ) -> str:
        """Persist a scheduled audit and stamp the website. Returns the report id."""
        now = datetime.now(timezone.utc)
        session: Session = self._db_session_factory()
        try:
            report = Report(
                website_id=website_id,
                user_id=user_id,
                url=url,
                performance=result.performance,
                accessibility=result.accessibility,
                best_practices=result.best_practices,
                seo=result.seo,
                pwa=result.pwa,
                metrics=result.metrics or None,
                opportunities=result.opportunities or None,
                diagnostics=result.diagnostics or None,
                raw_report=result.raw_report,
                created_at=now,
            )
            session.add(report)
            session.flush()
            report_id = report.id

            session.execute(
                update(Website)
                .where(Website.id == website_id)
                .values(last_analyzed_at=now, updated_at=now)
            )
            session.commit()
            logger.info(f"Saved report {report_id} for website {website_id}")
            return report_id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# ── Async queries (API) ─────────────────────────────────────────


async def get_report_by_id(db: AsyncSession, report_id: str, user_id: str) -> Optional[Report]:
    result = await db.execute(
        select(Report).where(Report.id == report_id, Report.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_website_reports(
    db: AsyncSession,
    website_id: str,
    user_id: str,
    limit: int = 10,
    offset: int = 0,
    sort_by: ReportSortField = ReportSortField.CREATED_AT,
    order: SortOrder = SortOrder.DESC,
) -> list[dict]:
    column = _SORT_COLUMNS[ReportSortField(sort_by)]
    direction = desc if SortOrder(order) == SortOrder.DESC else asc
    result = await db.execute(
        select(Report)
        .where(Report.website_id == website_id, Report.user_id == user_id)
        .order_by(direction(column))
        .offset(offset)
        .limit(limit)
    )
    return [report_to_dict(r) for r in result.scalars().all()]


async def get_user_reports(
    db: AsyncSession, user_id: str, limit: int = 10, offset: int = 0
) -> list[dict]:
    result = await db.execute(
        select(Report)
        .where(Report.user_id == user_id)
        .order_by(Report.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return [report_to_dict(r) for r in result.scalars().all()]


async def delete_report(db: AsyncSession, report_id: str, user_id: str) -> None:
    await db.execute(
        delete(Report).where(Report.id == report_id, Report.user_id == user_id)
    )
    await db.commit()


async def delete_website_reports(db: AsyncSession, website_id: str) -> None:
    await db.execute(delete(Report).where(Report.website_id == website_id))
