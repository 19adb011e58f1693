"""
Website ORM model — maps to the "websites" table.

`cron` is the user's recurring audit schedule; the schedule manager keeps a
repeating queue registration in sync with it. `last_analyzed_at` is stamped by
ReportStore.save_report whenever a scheduled audit is persisted.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Website(Base):
    __tablename__ = "websites"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cron: Mapped[str | None] = mapped_column(String(100), nullable=True)

    last_analyzed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Website {self.id} {self.url} cron={self.cron!r}>"
