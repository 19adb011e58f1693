"""
Pydantic schemas for the schedule and queue inspection endpoints.

ScheduleResponse: one repeating registration (a website's cron schedule)
QueueStatus: how many jobs sit in each queue state
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ScheduleResponse(BaseModel):
    id: str                    # website:<website_id>
    website_id: Optional[str] = None
    url: Optional[str] = None
    cron: str
    next_run: datetime


class QueueStatus(BaseModel):
    waiting: int
    delayed: int
    active: int
    failed: int        # dead-letter entries
    completed: int
    repeating: int     # cron registrations
