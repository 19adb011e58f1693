"""
Report ORM model — one persisted audit of a website.

Scores are 0-100 integers (NULL when the category was not audited).
metrics/opportunities/diagnostics are stored as JSON so the shape can follow
the audit engine without schema changes. raw_report keeps the full engine
output and is never returned by listing queries.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, JSONType


def _new_id() -> str:
    return str(uuid.uuid4())


class Report(Base):
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    website_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("websites.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)

    # ── Category scores ─────────────────────────────────────────
    performance: Mapped[int | None] = mapped_column(Integer, nullable=True)
    accessibility: Mapped[int | None] = mapped_column(Integer, nullable=True)
    best_practices: Mapped[int | None] = mapped_column(Integer, nullable=True)
    seo: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pwa: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # ── Details ─────────────────────────────────────────────────
    metrics: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    opportunities: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    diagnostics: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    raw_report: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def scores(self) -> dict:
        return {
            "performance": self.performance,
            "accessibility": self.accessibility,
            "best_practices": self.best_practices,
            "seo": self.seo,
            "pwa": self.pwa,
        }

    def __repr__(self) -> str:
        return f"<Report {self.id} website={self.website_id}>"
